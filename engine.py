import sys
import time
import hashlib
import logging
import argparse
import threading
import importlib.util
from pathlib import Path
from typing import Dict, List, Optional, Type
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, wait
from cache.source_cache import SourceCache
from config.regions import regions
from config.settings import ConfigManager
from models.base_models import (
    Finding, FindingStatus, PluginReport, PluginResult, PluginState, ScanReport
)
from plugins.base_plugin import PLUGIN_REGISTRY, BasePlugin
from rules.asl_evaluator import AslEvaluator
from rules.compliance_mapper import filter_by_framework, map_compliance
from rules.rules_mgr import RuleManager


BASE_DIR = Path(__file__).resolve().parent
PLUGIN_DIR = BASE_DIR / "plugins"
OUTPUT_DIR = BASE_DIR / "outputs"

# How often the engine checks running plugins against their time budget
BUDGET_POLL_SECONDS = 0.05

EXIT_CONFIG_ERROR = 3


class ScanEngine:

    def __init__(self, config_file_path: Optional[str] = None,
                 config_manager: Optional[ConfigManager] = None,
                 cache: Optional[SourceCache] = None):
        self.config = config_manager or ConfigManager(config_file_path)
        self.cache = cache
        self.plugins: Dict[str, Type[BasePlugin]] = {}
        self.results = ScanReport()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.logger.info(f"Initializing ScanEngine with config: {config_file_path or 'defaults'}")


    def _load_module_from_file(self, module_name, file_path):
        """Helper to dynamically load a module from a file path."""
        if module_name in sys.modules:
            return sys.modules[module_name]
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            del sys.modules[module_name]
            raise
        return module


    def _get_cache(self) -> SourceCache:
        if self.cache is None:
            cache_file = self.config.get_cache_file()
            if not cache_file:
                raise ValueError("No source cache given and no 'cache_file' configured.")
            self.cache = SourceCache.from_file(cache_file)
        return self.cache


    def load_plugins(self) -> Dict[str, Type[BasePlugin]]:
        """Imports plugin modules for the configured providers and selects the plugins to run."""
        providers = self.config.get_providers()
        for provider in providers:
            for file_path in sorted((PLUGIN_DIR / provider).rglob("*.py")):
                module_name = ".".join(file_path.relative_to(BASE_DIR).with_suffix("").parts)
                try:
                    self._load_module_from_file(module_name, file_path)
                except Exception as e:
                    self.logger.error(f"Error loading plugin module {module_name}: {e}")

        available = {
            plugin_id: plugin_cls
            for plugin_id, plugin_cls in sorted(PLUGIN_REGISTRY.items())
            if plugin_cls.provider in providers
        }

        requested = self.config.get_plugin_ids()
        if requested:
            selected = {}
            for plugin_id in requested:
                if plugin_id in available:
                    selected[plugin_id] = available[plugin_id]
                else:
                    self.logger.error(f"Couldn't find a registered plugin named {plugin_id}")
        else:
            selected = available

        framework = self.config.get("compliance_framework")
        if framework:
            selected = {
                plugin_id: plugin_cls for plugin_id, plugin_cls in selected.items()
                if framework.lower() in {key.lower() for key in plugin_cls.metadata().compliance}
            }

        self.plugins = selected
        self.logger.info(f"Selected {len(selected)} plugins: {list(selected)}")
        return selected


    def _execute_plugin(self, plugin_cls, entry: PluginReport, region_set, cancel_event, started) -> PluginResult:
        started[entry.plugin_id] = time.monotonic()
        entry.state = PluginState.RUNNING
        self.logger.info(f"Running plugin: {entry.plugin_id}")
        return plugin_cls().execute(self._get_cache(), self.config, region_set, cancel_event)


    def _start_plugin(self, plugin_cls, entry: PluginReport, region_set, cancel_event, started) -> Future:
        """Runs one plugin on its own daemon thread so an overrunning plugin never blocks the queue."""
        future: Future = Future()

        def _worker():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self._execute_plugin(plugin_cls, entry, region_set, cancel_event, started))
            except Exception as e:
                future.set_exception(e)

        worker = threading.Thread(target=_worker, name=f"plugin-{entry.plugin_id}", daemon=True)
        worker.start()
        return future


    def _record_fault(self, entry: PluginReport, message: str, extra: Dict[str, str]):
        entry.error = message
        entry.findings = map_compliance(
            entry.plugin_id, entry.title, entry.category,
            self.plugins[entry.plugin_id].metadata().compliance,
            [Finding(status=FindingStatus.UNKNOWN, message=message, extra=extra)],
        )
        entry.state = PluginState.DONE_WITH_FAULT


    def _settle(self, entry: PluginReport, future: Future, started: Dict[str, float]):
        entry.duration_seconds = time.monotonic() - started.get(entry.plugin_id, time.monotonic())
        try:
            result: PluginResult = future.result()
        except Exception as e:
            self.logger.error(f"Error running plugin {entry.plugin_id}: {e}")
            self._record_fault(entry, f"Unknown: plugin execution failed: {e}",
                               {"exception": type(e).__name__})
            return

        findings = result.findings
        if result.error and not findings:
            findings = [Finding(status=FindingStatus.UNKNOWN, message=result.error)]

        entry.state = PluginState.AGGREGATED
        entry.error = result.error
        entry.source = result.source
        entry.region_states = result.region_states
        entry.findings = filter_by_framework(
            map_compliance(entry.plugin_id, entry.title, entry.category,
                           self.plugins[entry.plugin_id].metadata().compliance, findings),
            self.config.get("compliance_framework"),
        )
        entry.state = PluginState.DONE
        self.logger.info(f"Plugin {entry.plugin_id} completed. Findings: {len(entry.findings)}")


    def _start_report(self, mode: str):
        # Ensure fresh start at each call/cycle
        self.results.clear()
        self.results.metadata["scan_time"] = time.strftime("%Y-%m-%d %H:%M:%S")
        self.results.metadata["mode"] = mode
        self.results.metadata["providers"] = list(self.config.get_providers())


    def _finish_report(self, render: bool) -> ScanReport:
        self.results.metadata["plugins_run"] = len(self.results.entries)

        # Generate Integrity Hash for the final results structure
        results_json = self.results.model_dump_json()
        self.results.metadata["integrity_hash"] = hashlib.sha256(results_json.encode()).hexdigest()

        self.logger.info(f"Scan completed. Stats: {self.results.stats}")
        if render:
            self._generate_output()
        return self.results


    def run(self, render: bool = True) -> ScanReport:
        """Invokes every selected plugin exactly once and aggregates the results."""
        self._start_report("plugins")
        self._get_cache()
        if not self.plugins:
            self.load_plugins()

        # Region sets are resolved once per scan and shared read-only
        region_sets = {provider: regions(self.config, provider) for provider in self.config.get_providers()}
        timeout = self.config.get("plugin_timeout_seconds")
        max_running = self.config.get("max_concurrent_plugins")

        entries: Dict[str, PluginReport] = {}
        cancel_events: Dict[str, threading.Event] = {}
        started: Dict[str, float] = {}
        for plugin_id, plugin_cls in self.plugins.items():
            descriptor = plugin_cls.metadata()
            entries[plugin_id] = PluginReport(
                plugin_id=plugin_id, title=descriptor.title, category=descriptor.category
            )
            cancel_events[plugin_id] = threading.Event()

        queued = deque(self.plugins.items())
        running: Dict[Future, str] = {}
        while queued or running:
            while queued and len(running) < max_running:
                plugin_id, plugin_cls = queued.popleft()
                future = self._start_plugin(plugin_cls, entries[plugin_id], region_sets[plugin_cls.provider],
                                            cancel_events[plugin_id], started)
                running[future] = plugin_id

            done, _ = wait(list(running), timeout=BUDGET_POLL_SECONDS if timeout else None,
                           return_when=FIRST_COMPLETED)
            for future in done:
                self._settle(entries[running.pop(future)], future, started)

            if not timeout:
                continue
            now = time.monotonic()
            for future, plugin_id in list(running.items()):
                if plugin_id in started and now - started[plugin_id] > timeout:
                    # The thread cannot be stopped. Its slot goes to the next queued plugin
                    # and whatever it returns later is discarded.
                    cancel_events[plugin_id].set()
                    del running[future]
                    self.logger.warning(f"Plugin {plugin_id} exceeded its {timeout}s budget")
                    entries[plugin_id].duration_seconds = now - started[plugin_id]
                    self._record_fault(entries[plugin_id],
                                       f"Unknown: plugin execution exceeded {timeout}s budget",
                                       {"exception": "TimeoutError"})

        for plugin_id in self.plugins:
            self.results.add_entry(entries[plugin_id])

        return self._finish_report(render)


    def run_asl(self, render: bool = True) -> ScanReport:
        """Evaluates the declarative rules directly against the cache, without running any plugin."""
        self._start_report("asl")
        cache = self._get_cache()
        if not self.plugins:
            self.load_plugins()

        region_sets = {provider: regions(self.config, provider) for provider in self.config.get_providers()}
        rule_manager = RuleManager(self.config, self.plugins)

        for rule_id, rule in rule_manager.get_all_rules().items():
            entry = PluginReport(plugin_id=rule_id, title=rule.title, category=rule.category,
                                 state=PluginState.RUNNING)
            start = time.monotonic()
            evaluator = AslEvaluator(cache, region_sets.get(rule.provider))
            try:
                findings = evaluator.evaluate(rule.asl)
                state = PluginState.DONE
            except Exception as e:
                self.logger.error(f"Error evaluating declarative rule {rule_id}: {e}")
                entry.error = f"Unknown: rule evaluation failed: {e}"
                findings = [Finding(status=FindingStatus.UNKNOWN, message=entry.error,
                                    extra={"exception": type(e).__name__})]
                state = PluginState.DONE_WITH_FAULT

            entry.findings = filter_by_framework(
                map_compliance(rule_id, rule.title, rule.category, rule.compliance, findings),
                self.config.get("compliance_framework"),
            )
            entry.duration_seconds = time.monotonic() - start
            entry.state = state
            self.results.add_entry(entry)

        return self._finish_report(render)


    def _generate_output(self):
        """Render results as per configured output formats"""
        for output_name in self.config.get_output_modules():
            output_file_path = OUTPUT_DIR / f'{output_name}.py'
            try:
                output_module = self._load_module_from_file(f"outputs.{output_name}", output_file_path)
                OutputClass = getattr(output_module, "__plugin__", None)
                if OutputClass:
                    output_instance = OutputClass(self.config)
                    class_name = OutputClass.__name__

                    self.logger.info(f"Rendering output: {class_name}")

                    output_instance.render(self.results)

                    self.logger.info(f"Output {class_name} rendered successfully.")
                else:
                    self.logger.error(f"Couldn't find the correct output class in {output_file_path}")
            except FileNotFoundError:
                self.logger.error(f"Output file {output_file_path} not found.")
            except Exception as e:
                self.logger.error(f"Error generating output {output_name}: {e}")


def exit_code(report: ScanReport) -> int:
    if report.stats["fail"]:
        return 2
    if report.stats["unknown"]:
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    # Setup runtime options
    parser = argparse.ArgumentParser(description="skyaudit cloud configuration scanner")
    parser.add_argument("--config", default=None, help="Path to the configuration file")
    parser.add_argument("--cache", default=None, help="Path to the collected source cache (JSON/YAML)")
    parser.add_argument("--plugin", dest="plugins", action="append", default=None,
                        help="Plugin ID to run (repeatable, defaults to all)")
    parser.add_argument("--output", dest="outputs", action="append", default=None,
                        help="Output module to render (repeatable, e.g. console_output)")
    parser.add_argument("--asl", action='store_true', help="Evaluate declarative rules instead of plugins")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    # Setup basic logging
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(level=args.log_level.upper(), format=log_format)
    logger = logging.getLogger(__name__)

    overrides = {}
    if args.cache:
        overrides["cache_file"] = args.cache
    if args.plugins:
        overrides["plugins"] = args.plugins
    if args.outputs:
        overrides["outputs"] = args.outputs

    try:
        engine = ScanEngine(config_manager=ConfigManager(args.config, overrides))
        report = engine.run_asl() if args.asl else engine.run()
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Scan aborted: {e}")
        return EXIT_CONFIG_ERROR

    return exit_code(report)


if __name__ == "__main__":
    sys.exit(main())
