from typing import List, Optional
from cache.source_accessor import add_error
from models.base_models import FindingStatus, PluginDescriptor
from plugins.base_plugin import BasePlugin, PluginInvocation, register_plugin
from plugins.google.resources import create_resource_name, project_name
from plugins.result_recorder import ResultRecorder


SERVICE_ACCOUNT_USER = "roles/iam.serviceAccountUser"
SERVICE_ACCOUNT_ADMIN = "roles/iam.serviceAccountAdmin"


@register_plugin("google.iam.service_account_separation")
class ServiceAccountSeparation(BasePlugin):
    descriptor = PluginDescriptor(
        title="Service Account Separation",
        category="IAM",
        description="Ensures that no users have both the Service Account User and Service Account Admin role.",
        more_info="Ensuring that no users have both roles follows separation of duties, where no user "
                  "should have access to resources out of the scope of duty.",
        link="https://cloud.google.com/iam/docs/overview",
        recommended_action="Ensure that no service accounts have both the Service Account User and "
                           "Service Account Admin role attached.",
        apis=["projects:getIamPolicy", "projects:get"],
        compliance={
            "cis1": "1.8 Ensure that Separation of duties is enforced while assigning service account "
                    "related roles to users",
        },
    )

    @staticmethod
    def _members(bindings: List[dict], role: str) -> List[str]:
        members: List[str] = []
        for binding in bindings:
            if binding.get("role") == role:
                members.extend(binding.get("members") or [])
        return members

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
            iam_policies = source.add_source(["projects", "getIamPolicy", region])
            if iam_policies is None:
                return

            if iam_policies.err or iam_policies.data is None:
                results.add_result(FindingStatus.UNKNOWN, "Unable to query for IAM policies", region,
                                   extra={"error": iam_policies.err})
                return

            if not iam_policies.data:
                results.add_result(FindingStatus.OK, "No IAM policies found", region)
                return

            bindings = iam_policies.data[0].get("bindings") or []
            users = set(self._members(bindings, SERVICE_ACCOUNT_USER))
            not_separated = [
                member for member in dict.fromkeys(self._members(bindings, SERVICE_ACCOUNT_ADMIN))
                if member in users
            ]

            for member in not_separated:
                account_name = member.split(":", 1)[1] if ":" in member else member
                resource = create_resource_name("serviceAccounts", account_name, project)
                results.add_result(FindingStatus.FAIL,
                                   "The account has both the service account user and admin role",
                                   region, resource)

            if not not_separated:
                results.add_result(FindingStatus.OK,
                                   "No accounts have both the service account user and admin roles",
                                   region)

        invocation.fan_out(invocation.regions["projects"], check_region)
        return None
