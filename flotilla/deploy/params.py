"""Deploy request dataclass."""

from dataclasses import asdict, dataclass, field, fields


@dataclass
class DeployRequest:
    """All options of a single deploy invocation. Serializable for the daemon API."""

    names: list[str]
    force: bool = False
    only_selected: bool = False
    skip_checks: bool = False
    skip_readiness: bool = False
    environment_sets: list[str] = field(default_factory=list)
    wait: bool = False  # await readiness even when nothing depends on the service
    serial: bool = False
    apply_fixes: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> "DeployRequest":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})

    def to_dict(self) -> dict:
        return asdict(self)
