from typing import Optional
from cache.source_accessor import add_error
from models.base_models import FindingStatus, PluginDescriptor
from plugins.base_plugin import BasePlugin, PluginInvocation, register_plugin
from plugins.google.resources import create_resource_name, is_read_replica, project_name
from plugins.result_recorder import ResultRecorder


OPEN_NETWORK = "0.0.0.0/0"


@register_plugin("google.sql.db_publicly_accessible")
class DbPubliclyAccessible(BasePlugin):
    descriptor = PluginDescriptor(
        title="DB Publicly Accessible",
        category="SQL",
        description="Ensures that SQL instances do not allow public access",
        more_info="Unless there is a specific business requirement, SQL instances should not have a "
                  "public endpoint and should only be accessed from within a VPC.",
        link="https://cloud.google.com/sql/docs/mysql/authorize-networks",
        recommended_action="Ensure that SQL instances are configured to prohibit traffic from the "
                           "public 0.0.0.0 global IP address.",
        apis=["instances:sql:list", "projects:get"],
        compliance={
            "hipaa": "SQL instances should only be launched in VPC environments and accessed through "
                     "private endpoints. Exposing SQL instances to the public network may increase the "
                     "risk of access from disallowed parties. HIPAA requires strict access and "
                     "integrity controls around sensitive data.",
            "pci": "PCI requires backend services to be properly firewalled. Ensure SQL instances are "
                   "not accessible from the Internet and use proper jump box access mechanisms.",
            "cis1": "6.5 Ensure that Cloud SQL database instances are not open to the world",
        },
    )

    def run(self, invocation: PluginInvocation) -> Optional[str]:
        source = invocation.source

        projects = source.add_source(["projects", "get", "global"])
        project = project_name(projects)
        if not projects or projects.err or project is None:
            invocation.results.add_result(
                FindingStatus.UNKNOWN,
                f"Unable to query for projects: {add_error(projects)}",
                "global",
                extra={"error": projects.err} if projects and projects.err else None,
            )
            return None

        def check_region(region: str, results: ResultRecorder):
            sql_instances = source.add_source(["instances", "sql", "list", region])
            if sql_instances is None:
                return

            if sql_instances.err or sql_instances.data is None:
                results.add_result(FindingStatus.UNKNOWN,
                                   f"Unable to query SQL instances: {add_error(sql_instances)}",
                                   region, extra={"error": sql_instances.err})
                return

            if not sql_instances.data:
                results.add_result(FindingStatus.OK, "No SQL instances found", region)
                return

            for sql_instance in sql_instances.data:
                if is_read_replica(sql_instance):
                    continue

                ip_config = (sql_instance.get("settings") or {}).get("ipConfiguration")
                if not ip_config:
                    continue

                resource = create_resource_name("instances", sql_instance.get("name"), project)
                networks = ip_config.get("authorizedNetworks") or []

                if not ip_config.get("ipv4Enabled"):
                    results.add_result(FindingStatus.OK,
                                       "SQL Instance is not publicly accessible", region, resource)
                elif any(network.get("value") == OPEN_NETWORK for network in networks):
                    results.add_result(FindingStatus.FAIL,
                                       "SQL Instance is publicly accessible by all IP addresses",
                                       region, resource)
                elif networks:
                    results.add_result(FindingStatus.WARN,
                                       "SQL Instance is publicly accessible by specific IP addresses",
                                       region, resource)
                else:
                    results.add_result(FindingStatus.OK,
                                       "SQL Instance is not publicly accessible", region, resource)

        invocation.fan_out(invocation.regions["instances.sql"], check_region)
        return None
