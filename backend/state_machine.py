from models import AdmissionStatus, RequestStatus

ADMISSION_TRANSITIONS: dict[str, list[str]] = {
    AdmissionStatus.ACTIVE: [AdmissionStatus.APPROVED],
}

SUPPLY_REQUEST_TRANSITIONS: dict[str, list[str]] = {
    RequestStatus.PENDING: [RequestStatus.APPROVED],
    RequestStatus.APPROVED: [RequestStatus.COMPLETED],
}

VALID_TRANSITIONS: dict[str, dict[str, list[str]]] = {
    "admission": ADMISSION_TRANSITIONS,
    "supply_request": SUPPLY_REQUEST_TRANSITIONS,
}


def _value(state) -> str:
    return state.value if hasattr(state, "value") else str(state)


def validate_transition(kind: str, current_state, new_state) -> bool:
    """Validate and return True if transition is allowed, raise ValueError otherwise."""
    transitions = VALID_TRANSITIONS.get(kind)
    if transitions is None:
        raise ValueError(f"Unknown record kind: {kind}")

    current = _value(current_state)
    target = _value(new_state)
    allowed = [_value(s) for s in transitions.get(current, [])]
    if not allowed:
        raise ValueError(f"No transitions from state '{current}' for {kind}")

    if target not in allowed:
        raise ValueError(
            f"Invalid transition: {kind} cannot go from '{current}' to '{target}'. "
            f"Allowed: {allowed}"
        )

    return True
