import re

OWNER_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,16}")
SCENE_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,12}")


class InvalidIdentifier(ValueError):
    pass


def validate_owner_id(owner_id) -> bool:
    return isinstance(owner_id, str) and OWNER_ID_RE.fullmatch(owner_id) is not None

def validate_scene_id(scene_id) -> bool:
    return isinstance(scene_id, str) and SCENE_ID_RE.fullmatch(scene_id) is not None

def require_owner_id(owner_id) -> None:
    if not validate_owner_id(owner_id):
        raise InvalidIdentifier("Invalid user ID")

def require_ids(owner_id, scene_id) -> None:
    """
    Raise InvalidIdentifier unless:
    - owner id is 1-16 chars of [A-Za-z0-9_-]
    - scene id is 1-12 chars of [A-Za-z0-9_-]
    """
    require_owner_id(owner_id)
    if not validate_scene_id(scene_id):
        raise InvalidIdentifier("Invalid scene ID")
