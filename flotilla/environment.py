"""Environment composition: base variables layered with named environment sets."""


def merge_overlay(base: dict[str, str], overlay: dict[str, str]) -> dict[str, str]:
    """Flat dict merge. Overlay wins for every key it defines."""
    result = base.copy()
    for key, value in overlay.items():
        result[key] = value
    return result


def compose_environment(
    base: dict[str, str],
    environment_sets: dict[str, dict[str, str]],
    requested: list[str],
) -> dict[str, str]:
    """Final environment for one service or task.

    Starts from ``base`` and applies each requested set in order, so a later
    set overrides an earlier one and any set overrides the base. Requested
    names the entity does not define are ignored: sets are selected per
    deploy request, not per entity.
    """
    result = dict(base)
    for set_name in requested:
        overlay = environment_sets.get(set_name)
        if overlay:
            result = merge_overlay(result, overlay)
    return result
