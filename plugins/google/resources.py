from typing import Optional


def create_resource_name(resource_type: str, resource_id: str, project: Optional[str] = None,
                         location_type: Optional[str] = None, location: Optional[str] = None) -> str:
    """Builds a Google resource name, e.g. projects/p1/instances/db-1."""
    resource_name = f"projects/{project}/" if project else ""
    if location_type == "global":
        resource_name += "global/"
    elif location_type in ("region", "zone") and location:
        resource_name += f"{location_type}s/{location}/"
    return f"{resource_name}{resource_type}/{resource_id}"


def project_name(projects) -> Optional[str]:
    """Project name from a projects:get cache entry, if collected."""
    if not projects or not isinstance(projects.data, list) or not projects.data:
        return None
    first = projects.data[0]
    if isinstance(first, dict):
        return first.get("name")
    return None


def is_read_replica(sql_instance: dict) -> bool:
    instance_type = sql_instance.get("instanceType") or ""
    return instance_type.upper() == "READ_REPLICA_INSTANCE"
