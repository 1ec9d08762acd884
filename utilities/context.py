from dataclasses import dataclass
from typing import Callable, Optional

from .errors import PermissionDeniedError
from .llm import call_gemini_api


@dataclass
class RequestContext:
    """Per-request caller identity and AI access, passed to every service.

    `user_id` comes from the identity provider (the X-User-Id header);
    `llm` lets callers swap the text-generation function.
    """
    user_id: Optional[str] = None
    api_url: Optional[str] = None
    llm: Optional[Callable[[str], str]] = None

    def complete(self, prompt: str) -> str:
        if self.llm is not None:
            return self.llm(prompt)
        return call_gemini_api(prompt, api_url=self.api_url)

    def require_user(self) -> str:
        if not self.user_id:
            raise PermissionDeniedError('You must be signed in to do that.')
        return self.user_id
