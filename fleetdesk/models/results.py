from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ActionResult(BaseModel):
    """
    Outcome of an ActionExecutor operation.

    Business-rule failures are reported here rather than raised, so wizards
    can phrase them for the user and the tool loop can hand them back to the
    reasoning service.
    """
    success: bool
    data: Any = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    candidates: List[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ActionResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str,
        candidates: Optional[List[str]] = None,
    ) -> "ActionResult":
        return cls(success=False, error=error, error_code=error_code, candidates=candidates or [])

    def to_tool_payload(self) -> Dict[str, Any]:
        """Serialize for a tool response message."""
        if self.success:
            payload: Dict[str, Any] = {"success": True, "data": self.data}
            if self.message:
                payload["message"] = self.message
            return payload
        payload = {"success": False, "error": self.error, "error_code": self.error_code}
        if self.candidates:
            payload["candidates"] = self.candidates
        return payload
