from typing import List, Optional
from cache.source_accessor import add_error
from models.base_models import FindingStatus, PluginDescriptor
from plugins.base_plugin import BasePlugin, PluginInvocation, register_plugin
from plugins.result_recorder import ResultRecorder


SQL_CONFIGURATION_FILTER = 'protoPayload.methodName="cloudsql.instances.update"'


@register_plugin("google.logging.sql_configuration_logging")
class SqlConfigurationLogging(BasePlugin):
    descriptor = PluginDescriptor(
        title="SQL Configuration Logging",
        category="Logging",
        description="Ensures that logging and log alerts exist for SQL configuration changes",
        more_info="Project Ownership is the highest level of privilege on a project, any changes in SQL "
                  "configurations should be heavily monitored to prevent unauthorized changes.",
        link="https://cloud.google.com/logging/docs/logs-based-metrics/",
        recommended_action="Ensure that log alerts exist for SQL configuration changes.",
        apis=["metrics:list", "alertPolicies:list"],
        compliance={
            "hipaa": "HIPAA requires the logging of all activity including access and all actions taken.",
            "cis1": "2.11 Ensure that the log metric filter and alerts exist for SQL instance "
                    "configuration changes",
        },
    )

    @staticmethod
    def _metric_type(metrics: List[dict]) -> Optional[str]:
        """Type of the first metric whose filter watches SQL configuration updates."""
        for metric in metrics:
            metric_filter = metric.get("filter")
            if metric_filter and metric_filter.strip() == SQL_CONFIGURATION_FILTER:
                return (metric.get("metricDescriptor") or {}).get("type") or None
        return None

    @staticmethod
    def _alert_policy_for(alert_policies: List[dict], metric_type: str) -> Optional[dict]:
        for alert_policy in alert_policies:
            for condition in alert_policy.get("conditions") or []:
                threshold_filter = (condition.get("conditionThreshold") or {}).get("filter")
                if not threshold_filter:
                    continue
                # e.g. metric.type="logging.googleapis.com/user/sql-changes" resource.type="global"
                quoted = threshold_filter.split('"')
                if len(quoted) > 1 and quoted[1] == metric_type:
                    return alert_policy
        return None

    def run(self, invocation: PluginInvocation) -> Optional[str]:
        source = invocation.source

        def check_region(region: str, results: ResultRecorder):
            metrics = source.add_source(["metrics", "list", region])
            alert_policies = source.add_source(["alertPolicies", "list", region])
            if metrics is None or alert_policies is None:
                return

            if metrics.err or metrics.data is None:
                results.add_result(FindingStatus.UNKNOWN,
                                   f"Unable to query for log metrics: {add_error(metrics)}",
                                   region, extra={"error": metrics.err})
                return

            if alert_policies.err or alert_policies.data is None:
                results.add_result(FindingStatus.UNKNOWN,
                                   f"Unable to query for log alert policies: {add_error(alert_policies)}",
                                   region, extra={"error": alert_policies.err})
                return

            if not metrics.data:
                results.add_result(FindingStatus.FAIL, "No log metrics found", region)
                return

            if not alert_policies.data:
                results.add_result(FindingStatus.FAIL, "No log alert policies found", region)
                return

            metric_type = self._metric_type(metrics.data)
            if not metric_type:
                results.add_result(FindingStatus.FAIL,
                                   "Log metric for SQL configuration changes not found", region)
                return

            alert_policy = self._alert_policy_for(alert_policies.data, metric_type)
            if alert_policy:
                results.add_result(FindingStatus.OK,
                                   "Log alert for SQL configuration changes is enabled",
                                   region, alert_policy.get("name"))
            else:
                results.add_result(FindingStatus.FAIL,
                                   "Log alert for SQL configuration changes not found", region)

        invocation.fan_out(invocation.regions["alertPolicies"], check_region)
        return None
