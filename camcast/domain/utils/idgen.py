from ulid import ULID


def new_ulid(prefix: str | None = None) -> str:
    value = str(ULID()).lower()
    return f"{prefix}{value}" if prefix else value


def new_broadcast_id() -> str:
    return new_ulid("bc_")


def new_device_handle_id() -> str:
    return new_ulid("dh_")


def new_subscription_id() -> str:
    return new_ulid("sub_")
