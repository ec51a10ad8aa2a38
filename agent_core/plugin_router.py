"""
Plugin Router
=============
Selects at most one plugin for an inbound message and runs it under a
time budget.

Rules:
- Plugins are consulted in registration order; the first whose
  can_handle() accepts the message wins
- A plugin that raises or exceeds its timeout yields a matched result
  carrying an error, never an exception
- No match yields PluginResult(matched=False)

Author: Context Agent
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from .models import PluginContext, PluginResult

logger = logging.getLogger(__name__)


class BasePlugin:
    """
    Base class for plugins.

    Subclasses set ``name`` and ``description`` and implement can_handle()
    (a pure classifier, no I/O) and execute().
    """

    name: str = ""
    description: str = ""
    timeout_seconds: Optional[float] = None

    def can_handle(self, message: str) -> bool:
        raise NotImplementedError

    async def execute(self, context: PluginContext) -> PluginResult:
        raise NotImplementedError

    def error_result(self, error: str, response_text: Optional[str] = None) -> PluginResult:
        """Matched result describing a failure the user should hear about"""
        return PluginResult(
            matched=True,
            plugin_name=self.name,
            response_text=response_text or error,
            context_info=response_text,
            error=error,
        )


class PluginRouter:
    """
    Ordered plugin registry with timeout-guarded execution
    """

    def __init__(self, default_timeout: float = 5.0):
        """
        Initialize plugin router

        Args:
            default_timeout: Seconds a plugin may run when it sets no
                timeout of its own
        """
        self.default_timeout = default_timeout
        self._plugins: Dict[str, BasePlugin] = {}
        self._usage_stats: Dict[str, int] = defaultdict(int)

    def register(self, plugin: BasePlugin):
        """Register a plugin. Re-registering a name replaces it in place."""
        if plugin.name in self._plugins:
            logger.warning(f"⚠️ Replacing plugin: {plugin.name}")
        self._plugins[plugin.name] = plugin
        logger.info(f"🔌 Registered plugin: {plugin.name}")

    def get_plugin(self, name: str) -> Optional[BasePlugin]:
        return self._plugins.get(name)

    def list_plugins(self) -> List[Dict[str, str]]:
        return [
            {"name": plugin.name, "description": plugin.description}
            for plugin in self._plugins.values()
        ]

    # =========================================================================
    # ROUTING
    # =========================================================================

    def route(self, message: str) -> Optional[BasePlugin]:
        """First registered plugin that accepts the message, if any"""
        for plugin in self._plugins.values():
            try:
                if plugin.can_handle(message):
                    return plugin
            except Exception as e:
                logger.error(f"❌ Plugin {plugin.name} classifier failed: {e}")
        return None

    async def process_message(self, context: PluginContext) -> PluginResult:
        """
        Route the message and run the selected plugin.

        Returns:
            PluginResult; matched=False when no plugin accepted the message
        """
        plugin = self.route(context.user_message)
        if plugin is None:
            return PluginResult(matched=False)

        timeout = plugin.timeout_seconds or self.default_timeout
        self._usage_stats[plugin.name] += 1

        try:
            result = await asyncio.wait_for(plugin.execute(context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Plugin {plugin.name} timed out after {timeout}s")
            return plugin.error_result(f"Plugin '{plugin.name}' timed out")
        except Exception as e:
            logger.error(f"❌ Plugin {plugin.name} failed: {e}", exc_info=True)
            return plugin.error_result(f"Plugin '{plugin.name}' failed to process the request")

        result.matched = True
        result.plugin_name = result.plugin_name or plugin.name
        logger.info(
            f"🔌 Plugin {plugin.name} handled message "
            f"({'ok' if result.success else 'error: ' + str(result.error)})"
        )
        return result

    def get_stats(self) -> Dict[str, Any]:
        return {
            "registered_plugins": len(self._plugins),
            "plugin_names": list(self._plugins.keys()),
            "usage_counts": dict(self._usage_stats),
        }
