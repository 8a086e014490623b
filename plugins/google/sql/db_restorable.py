from typing import Optional
from cache.source_accessor import add_error
from models.base_models import FindingStatus, PluginDescriptor
from plugins.base_plugin import BasePlugin, PluginInvocation, register_plugin
from plugins.google.resources import create_resource_name, is_read_replica, project_name
from plugins.result_recorder import ResultRecorder


@register_plugin("google.sql.db_restorable")
class DbRestorable(BasePlugin):
    descriptor = PluginDescriptor(
        title="DB Restorable",
        category="SQL",
        description="Ensures SQL instances can be restored to a recent point",
        more_info="Google will maintain a point to which the database can be restored. This point "
                  "should not drift too far into the past, or else the risk of irrecoverable data "
                  "loss may occur.",
        link="https://cloud.google.com/sql/docs/mysql/instance-settings",
        recommended_action="Ensure all database instances are configured with automatic backups and "
                           "can be restored to a recent point with binary logging enabled.",
        apis=["instances:sql:list", "projects:get", "backupRuns:list"],
        compliance={
            "pci": "PCI requires that security procedures, including restoration of compromised "
                   "services, be tested frequently. The restorable time indicates the last known "
                   "time to which the instance can be restored.",
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
            backup_runs = source.add_source(["backupRuns", "list", region])
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

            if backup_runs is None or backup_runs.err or backup_runs.data is None:
                results.add_result(FindingStatus.UNKNOWN,
                                   f"Unable to query SQL backup runs: {add_error(backup_runs)}", region)
                return

            backed_up = {backup.get("instance") for backup in backup_runs.data if backup.get("instance")}

            for sql_instance in sql_instances.data:
                if is_read_replica(sql_instance):
                    continue

                name = sql_instance.get("name")
                resource = create_resource_name("instances", name, project)
                if name and name in backed_up:
                    results.add_result(FindingStatus.OK,
                                       "SQL instance has backup available", region, resource)
                else:
                    results.add_result(FindingStatus.FAIL,
                                       "SQL instance does not have backups available", region, resource)

        invocation.fan_out(invocation.regions["instances.sql"], check_region)
        return None
