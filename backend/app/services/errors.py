"""
Service-layer exceptions.

Each carries a machine-readable code, a message and optional details so
routes can translate it into an HTTPException detail without inspecting it.
"""


class RenderError(Exception):
    """Error that aborts a render request."""
    def __init__(self, code: str, message: str, details: dict = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        if self.details:
            detail["details"] = self.details
        return detail


class InvalidOutputSpecError(RenderError):
    """Output format or dimensions rejected before any work is done."""
    def __init__(self, message: str, details: dict = None):
        super().__init__("INVALID_OUTPUT_SPEC", message, details)


class EncodingFailureError(RenderError):
    """The pixel buffer could not be encoded; no partial image is returned."""
    def __init__(self, message: str, details: dict = None):
        super().__init__("ENCODING_FAILURE", message, details)


class TemplateNotFoundError(RenderError):
    """No stored template has the requested id."""
    def __init__(self, template_id: str):
        super().__init__(
            "TEMPLATE_NOT_FOUND",
            f"Template not found: {template_id}",
            {"template_id": template_id},
        )
        self.template_id = template_id


class InvalidSceneError(RenderError):
    """A scene document failed validation."""
    def __init__(self, message: str, details: dict = None):
        super().__init__("INVALID_SCENE", message, details)
