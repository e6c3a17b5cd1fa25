from typing import List, Optional, Sequence


class LcaError(Exception):
    """Base class for every error raised by the LCA backend."""


class ConfigurationError(LcaError):
    """A static artifact (factors, coefficients, decision tree) is missing or unusable."""


class UnknownMaterialError(ConfigurationError):
    """The requested material has no entry in the factor store."""

    def __init__(self, material: str, known: Sequence[str] = ()):
        self.material = material
        self.known = list(known)
        message = f"No LCA factors for material '{material}'."
        if self.known:
            message += f" Known materials: {', '.join(self.known)}"
        super().__init__(message)


class ValidationError(LcaError):
    """Caller-correctable input problem. `fields` names the offending inputs."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []
