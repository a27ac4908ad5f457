"""
Client navigation as a finite-state machine.

There are no URLs: the app shows exactly one ``Page`` at a time. Every auth or
profile change, and every explicit navigation, runs the same priority
cascade so that e.g. a banned user can never leave the banned page.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Page(str, Enum):
    LOADING = "loading"
    HOME = "home"
    LOGIN = "login"
    SIGNUP = "signup"
    PROFILE = "profile"
    PROFILE_COMPLETION = "profile-completion"
    USER_PROFILE = "user-profile"
    REQUESTS = "requests"
    MESSAGES = "messages"
    CHAT = "chat"
    ADMIN = "admin"
    ADMIN_USERS = "admin-users"
    ADMIN_SWAPS = "admin-swaps"
    ADMIN_MESSAGES = "admin-messages"
    ADMIN_CHAT = "admin-chat"
    BANNED = "banned"


AUTH_ONLY_PAGES = frozenset({
    Page.PROFILE,
    Page.PROFILE_COMPLETION,
    Page.REQUESTS,
    Page.MESSAGES,
    Page.CHAT,
    Page.ADMIN,
    Page.ADMIN_USERS,
    Page.ADMIN_SWAPS,
    Page.ADMIN_MESSAGES,
    Page.ADMIN_CHAT,
    Page.BANNED,
})

ADMIN_PAGES = frozenset({
    Page.ADMIN,
    Page.ADMIN_USERS,
    Page.ADMIN_SWAPS,
    Page.ADMIN_MESSAGES,
    Page.ADMIN_CHAT,
})

GUEST_PAGES = frozenset({Page.LOGIN, Page.SIGNUP})


@dataclass(frozen=True)
class AuthState:
    """Snapshot of who is signed in. ``resolved`` is False until the first check finishes."""
    resolved: bool = False
    user_id: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None

    @property
    def authenticated(self) -> bool:
        return self.resolved and self.user_id is not None

    @property
    def banned(self) -> bool:
        return bool(self.profile and self.profile.get("is_banned"))

    @property
    def profile_complete(self) -> bool:
        return bool(self.profile and self.profile.get("is_profile_complete"))

    @property
    def is_admin(self) -> bool:
        return bool(self.profile and self.profile.get("role") == "admin")


def resolve(current: Page, auth: AuthState) -> Page:
    """Apply the redirect cascade to ``current``."""
    if not auth.resolved:
        return current
    if auth.authenticated:
        if auth.banned:
            return Page.BANNED
        if not auth.profile_complete:
            return Page.PROFILE_COMPLETION
        if current in GUEST_PAGES or current in (Page.BANNED, Page.PROFILE_COMPLETION):
            return Page.HOME
        if current in ADMIN_PAGES and not auth.is_admin:
            return Page.HOME
        return current
    if current in AUTH_ONLY_PAGES:
        return Page.HOME
    return current


class Navigator:
    def __init__(self, page: Page = Page.HOME):
        self.page = page
        self.selected_user_id: Optional[str] = None
        self.selected_chat_user_id: Optional[str] = None
        self.auth = AuthState()

    @property
    def view(self) -> Page:
        """What to render right now; ``LOADING`` until auth is resolved."""
        if not self.auth.resolved:
            return Page.LOADING
        return self.page

    def on_auth_change(self, auth: AuthState) -> Page:
        self.auth = auth
        self.page = resolve(self.page, auth)
        return self.view

    def navigate(self, target: Page, user_id: Optional[str] = None) -> Page:
        """Request ``target``; the cascade may redirect it.

        ``user_id`` selects the profile for USER_PROFILE or the peer for CHAT.
        """
        if target == Page.LOADING:
            return self.view
        if target == Page.USER_PROFILE:
            if not user_id:
                target = Page.HOME
            self.selected_user_id = user_id
        elif target == Page.CHAT:
            self.selected_chat_user_id = user_id
        if target in ADMIN_PAGES and not self.auth.is_admin:
            target = Page.HOME
        self.page = resolve(target, self.auth)
        return self.view

    def state(self) -> Dict[str, Any]:
        return {
            "page": self.view.value,
            "selected_user_id": self.selected_user_id,
            "selected_chat_user_id": self.selected_chat_user_id,
        }
