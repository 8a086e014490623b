import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, Optional, Type
from cache.source_accessor import SourceAccessor, SourceTrace
from cache.source_cache import SourceCache
from config.regions import RegionSet, regions
from config.settings import ConfigManager
from models.base_models import FindingStatus, PluginDescriptor, PluginResult, RegionState
from plugins.result_recorder import ResultRecorder


# --- Decorator for registering plugins ---
# Global registry mapping plugin ID ("provider.category.name") to its class
PLUGIN_REGISTRY: Dict[str, Type['BasePlugin']] = {}

def register_plugin(plugin_id: str):
    """
    Decorator to register a BasePlugin subclass under a plugin ID.
    The provider is the first dotted segment of the ID.
    """
    def decorator(cls: Type['BasePlugin']):
        cls.plugin_id = plugin_id
        cls.provider = plugin_id.split('.', 1)[0]
        PLUGIN_REGISTRY[plugin_id] = cls
        return cls
    return decorator


RegionTask = Callable[[str, ResultRecorder], None]


class PluginInvocation:
    """Collaborators handed to a plugin for exactly one execution."""

    def __init__(
        self,
        cache: SourceCache,
        config: ConfigManager,
        region_set: RegionSet,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.settings = config.get_plugin_settings()
        self.regions = region_set
        self.trace = SourceTrace()
        self.source = SourceAccessor(cache, self.trace)
        self.results = ResultRecorder()
        self.region_states: Dict[str, RegionState] = {}
        self.cancel_event = cancel_event or threading.Event()
        self.max_workers = config.get("max_region_workers", 1)

    def _run_region(self, region: str, region_task: RegionTask, recorder: ResultRecorder) -> RegionState:
        if self.cancel_event.is_set():
            return RegionState.CANCELLED
        try:
            region_task(region, recorder)
        except Exception as e:
            self.logger.error(f"Region task for {region} failed: {e}")
            recorder.add_result(
                FindingStatus.UNKNOWN,
                f"Unable to evaluate region: {e}",
                region,
                extra={"exception": type(e).__name__},
            )
            return RegionState.ERROR

        statuses = [finding.status for finding in recorder]
        if not statuses:
            return RegionState.EMPTY
        if FindingStatus.UNKNOWN in statuses:
            return RegionState.ERROR
        return RegionState.OK

    def fan_out(self, region_list: Iterable[str], region_task: RegionTask):
        """
        Runs region_task once per region on a bounded worker pool and returns
        only after every dispatched task has settled. Each region records into
        its own recorder; they are merged in enumeration order at the join.
        """
        region_list = list(dict.fromkeys(region_list))
        recorders = {region: ResultRecorder() for region in region_list}
        for region in region_list:
            self.region_states[region] = RegionState.PENDING

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                region: executor.submit(self._run_region, region, region_task, recorders[region])
                for region in region_list
            }
            # Leaving the context manager is the join barrier.

        for region in region_list:
            self.region_states[region] = futures[region].result()
            self.results.extend(recorders[region].findings)


class BasePlugin(ABC):
    plugin_id: str = ""
    provider: str = ""
    descriptor: PluginDescriptor

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def metadata(cls) -> PluginDescriptor:
        return cls.descriptor

    @abstractmethod
    def run(self, invocation: PluginInvocation) -> Optional[str]:
        """
        Evaluates the check against the cache.
        Records findings through invocation.results and returns an error
        message, or None.
        """
        pass

    def execute(
        self,
        cache: SourceCache,
        config: ConfigManager,
        region_set: Optional[RegionSet] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PluginResult:
        if region_set is None:
            region_set = regions(config, self.provider)
        invocation = PluginInvocation(cache, config, region_set, cancel_event)
        error = self.run(invocation)
        return PluginResult(
            plugin_id=self.plugin_id,
            error=error,
            findings=invocation.results.findings,
            source=invocation.trace.to_dict(),
            region_states=dict(invocation.region_states),
        )
