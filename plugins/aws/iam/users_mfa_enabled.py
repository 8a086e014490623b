from typing import Optional
from cache.source_accessor import add_error
from config.regions import default_region
from models.base_models import AslCondition, AslTree, FindingStatus, PluginDescriptor
from plugins.base_plugin import BasePlugin, PluginInvocation, register_plugin


ROOT_ACCOUNT = "<root_account>"


def _is_true(value) -> bool:
    # Credential reports carry "true"/"false" strings unless the collector converted them
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


@register_plugin("aws.iam.users_mfa_enabled")
class UsersMfaEnabled(BasePlugin):
    descriptor = PluginDescriptor(
        title="Users MFA Enabled",
        category="IAM",
        description="Ensures a multi-factor authentication device is enabled for all users within the account",
        more_info="User accounts should have an MFA device setup to enable two-factor authentication",
        link="http://docs.aws.amazon.com/IAM/latest/UserGuide/Using_ManagingPasswordPolicies.html",
        recommended_action="Enable an MFA device for the user account",
        apis=["IAM:generateCredentialReport"],
        compliance={
            "hipaa": "MFA helps provide additional assurance that the user accessing the environment "
                     "has been identified. HIPAA requires strong controls around entity authentication "
                     "which can be enhanced through the use of MFA.",
            "pci": "PCI requires MFA for all access to cardholder environments. "
                   "Create an MFA key for user accounts.",
            "cis1": "1.10 Ensure multi-factor authentication (MFA) is enabled for all IAM users "
                    "that have a console password",
        },
        asl=AslTree(conditions=[
            AslCondition(
                service="iam",
                api="generateCredentialReport",
                property="mfa_active",
                transform="STRING",
                op="EQ",
                value="true",
            ),
        ]),
    )

    def run(self, invocation: PluginInvocation) -> Optional[str]:
        results = invocation.results
        region = default_region(invocation.config)

        report = invocation.source.add_source(["iam", "generateCredentialReport", region])
        if report is None:
            return None

        if report.err or report.data is None:
            results.add_result(FindingStatus.UNKNOWN,
                               f"Unable to query for user MFA status: {add_error(report)}")
            return None

        if len(report.data) == 1:
            # Only the root account is present
            results.add_result(FindingStatus.OK, "No user accounts found")
            return None

        found = False
        for user in report.data:
            # Root and password-less users never log into the console
            if user.get("user") == ROOT_ACCOUNT or not _is_true(user.get("password_enabled")):
                continue
            found = True

            if _is_true(user.get("mfa_active")):
                results.add_result(FindingStatus.OK,
                                   f"User: {user.get('user')} has an MFA device",
                                   "global", user.get("arn"))
            else:
                results.add_result(FindingStatus.FAIL,
                                   f"User: {user.get('user')} does not have an MFA device enabled",
                                   "global", user.get("arn"))

        if not found:
            results.add_result(FindingStatus.OK, "No users with passwords requiring MFA found")
        return None
