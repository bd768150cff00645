"""Merlin orchestrator.

Owns the configuration, the storage driver, the plugins and the registry
of models. Everything is set up before connecting:

    merlin = Merlin({"idKey": "_id"})
    merlin.set_driver(MemoryDriver)
    User = merlin.model("User", {"name": {"type": "name", "required": True}})
    Post = merlin.model("Post", True)
    User.has_many("Post")
    await merlin.connect("memory://")

Once connected, drivers, plugins and models can no longer be changed.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable

from merlin import naming
from merlin.config import MerlinConfig
from merlin.errors import ConfigurationError
from merlin.hooks import HookHub
from merlin.model import Model, build_model_class
from merlin.persistence.driver import Driver
from merlin.persistence.factory import create_driver
from merlin.schema import Schema
from merlin.static_model import StaticModel, augment_model

logger = logging.getLogger(__name__)


class MerlinStatus(Enum):
    INIT = "init"
    READY = "ready"
    CONNECTED = "connected"


class Merlin(HookHub):
    """Registry of models sharing one driver.

    Hooks emitted here:
        plugin(instance), model(static_model), connected(merlin), close(merlin)
    """

    def __init__(self, config: MerlinConfig | dict[str, Any] | None = None, **overrides: Any):
        super().__init__()
        if config is None:
            config = MerlinConfig()
        elif isinstance(config, dict):
            config = MerlinConfig.from_dict(config)
        if overrides:
            config = config.replace(**overrides)
        self.config: MerlinConfig = config
        self.status = MerlinStatus.INIT
        self.models: dict[str, StaticModel] = {}
        self.plugins: list[Any] = []
        self.registry_lock = threading.RLock()
        self._driver: Driver | None = None

    @classmethod
    def from_config(cls, config: MerlinConfig | None = None) -> Merlin:
        """Build an orchestrator with a driver chosen by ``database_url``.

        Reads the environment when no config is given.
        """
        config = config or MerlinConfig.from_env()
        merlin = cls(config)
        merlin.set_driver(create_driver(config.database_url or "memory://", config.id_key))
        return merlin

    def __repr__(self) -> str:
        return f"<Merlin {self.status.value} models={sorted(self.models)}>"

    @property
    def connected(self) -> bool:
        return self.status == MerlinStatus.CONNECTED

    def _check_not_connected(self, action: str) -> None:
        if self.connected:
            raise ConfigurationError(f"Cannot {action} after connecting")

    # =========================================================================
    # Setup
    # =========================================================================

    @property
    def driver(self) -> Driver:
        if self._driver is None:
            raise ConfigurationError("No driver set; call set_driver() first")
        return self._driver

    def set_driver(self, driver: Driver | type | Callable[[Merlin], Driver]) -> Merlin:
        """Set the storage driver.

        Args:
            driver: A driver instance, a driver class (instantiated with no
                arguments) or a factory called with this orchestrator
        """
        self._check_not_connected("change the driver")
        if isinstance(driver, type):
            driver = driver()
        elif callable(driver) and not isinstance(driver, Driver):
            driver = driver(self)
        if not isinstance(driver, Driver):
            raise ConfigurationError(f"{type(driver).__name__} does not implement the driver protocol")
        self._driver = driver
        self.status = MerlinStatus.READY
        logger.debug("Driver set to %s", type(driver).__name__)
        return self

    def plugin(self, plugin: Any) -> Merlin:
        """Register a plugin.

        A callable plugin is called with this orchestrator; its return value
        (or the plugin itself, when it returns None) is kept.
        """
        self._check_not_connected("add plugins")
        instance = plugin(self) if callable(plugin) else plugin
        if instance is None:
            instance = plugin
        self.plugins.append(instance)
        self.emit("plugin", instance)
        return self

    def model(
        self,
        name: str,
        definition: Any = None,
        collection_name: str | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> StaticModel | None:
        """Register a model, or look one up when no definition is given.

        Args:
            name: Model name, e.g. ``"BlogPost"``
            definition: ``True`` for a schemaless model, a dict of schema
                rules, a Schema, or a Model subclass
            collection_name: Defaults to the pluralized lower-camel name
            defaults: Extra insert defaults, merged over the schema's

        Returns:
            The registered StaticModel (None for an unknown lookup)

        Raises:
            ConfigurationError: Without a driver, after connecting, or for
                an unusable definition
        """
        if definition is None:
            return self.models.get(name)
        if self._driver is None:
            raise ConfigurationError(f"Cannot register model '{name}' before setting a driver")
        self._check_not_connected(f"register model '{name}'")

        schema: Schema | None = None
        if definition is True:
            model_class = build_model_class(name)
        elif isinstance(definition, dict):
            schema = Schema(definition)
            model_class = build_model_class(name, schema)
        elif isinstance(definition, Schema):
            schema = definition
            model_class = build_model_class(name, schema)
        elif isinstance(definition, type) and issubclass(definition, Model):
            schema = getattr(definition, "schema", None)
            if not isinstance(schema, Schema):
                schema = None
            model_class = definition
        else:
            raise ConfigurationError(
                f"Cannot register model '{name}' from {type(definition).__name__}"
            )

        static = augment_model(
            self,
            name,
            collection_name or naming.collection_name(name),
            model_class,
            schema,
            defaults,
        )
        with self.registry_lock:
            if name in self.models:
                logger.warning("Model '%s' is registered again; replacing it", name)
            self.models[name] = static
        self.emit("model", static)
        logger.debug("Registered model %s (%s)", name, static.collection_name)
        return static

    def get_model(self, name: str) -> StaticModel:
        """A registered model.

        Raises:
            ConfigurationError: If no model has that name
        """
        with self.registry_lock:
            static = self.models.get(name)
        if static is None:
            raise ConfigurationError(f"Unknown model '{name}'")
        return static

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self, url: str | None = None, opts: dict[str, Any] | None = None) -> Merlin:
        """Connect the driver and freeze the setup."""
        driver = self.driver
        self._check_not_connected("connect again")
        await driver.connect(url or self.config.database_url, {"idKey": self.config.id_key, **(opts or {})})
        self.status = MerlinStatus.CONNECTED
        self.emit("connected", self)
        logger.info("Connected with %s (%d models)", type(driver).__name__, len(self.models))
        return self

    async def close(self) -> Merlin:
        """Disconnect the driver; setup may change again afterwards."""
        await self.driver.disconnect()
        self.status = MerlinStatus.READY
        self.emit("close", self)
        logger.info("Connection closed")
        return self
