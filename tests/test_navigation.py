import pytest

from navigation import AuthState, Navigator, Page, resolve

GUEST = AuthState(resolved=True)
USER = AuthState(resolved=True, user_id="u1", profile={"is_profile_complete": True, "role": "user"})
ADMIN = AuthState(resolved=True, user_id="a1", profile={"is_profile_complete": True, "role": "admin"})
INCOMPLETE = AuthState(resolved=True, user_id="u2", profile={"is_profile_complete": False})
BANNED = AuthState(resolved=True, user_id="u3", profile={"is_profile_complete": True, "is_banned": True})


def test_unresolved_auth_shows_loading_and_keeps_page():
    nav = Navigator(Page.REQUESTS)
    assert nav.view == Page.LOADING
    assert nav.on_auth_change(AuthState()) == Page.LOADING
    assert nav.page == Page.REQUESTS


@pytest.mark.parametrize("requested", list(Page))
def test_banned_user_always_lands_on_banned(requested):
    nav = Navigator()
    nav.on_auth_change(BANNED)
    assert nav.navigate(requested, "someone") == Page.BANNED


def test_ban_overrides_current_page():
    nav = Navigator(Page.CHAT)
    nav.on_auth_change(USER)
    assert nav.view == Page.CHAT
    assert nav.on_auth_change(BANNED) == Page.BANNED


def test_incomplete_profile_forces_completion():
    nav = Navigator()
    assert nav.on_auth_change(INCOMPLETE) == Page.PROFILE_COMPLETION
    assert nav.navigate(Page.REQUESTS) == Page.PROFILE_COMPLETION


def test_completing_profile_returns_home():
    nav = Navigator()
    nav.on_auth_change(INCOMPLETE)
    assert nav.on_auth_change(USER) == Page.HOME


@pytest.mark.parametrize("page", [Page.PROFILE, Page.REQUESTS, Page.MESSAGES, Page.CHAT, Page.ADMIN])
def test_guest_on_protected_page_goes_home(page):
    nav = Navigator(page)
    assert nav.on_auth_change(GUEST) == Page.HOME


@pytest.mark.parametrize("page", [Page.HOME, Page.LOGIN, Page.SIGNUP])
def test_guest_pages_stay_for_guests(page):
    assert resolve(page, GUEST) == page


@pytest.mark.parametrize("page", [Page.LOGIN, Page.SIGNUP])
def test_signed_in_user_leaves_login_and_signup(page):
    nav = Navigator(page)
    assert nav.on_auth_change(USER) == Page.HOME


def test_admin_pages_gate_on_role():
    user_nav = Navigator()
    user_nav.on_auth_change(USER)
    assert user_nav.navigate(Page.ADMIN_USERS) == Page.HOME

    admin_nav = Navigator()
    admin_nav.on_auth_change(ADMIN)
    assert admin_nav.navigate(Page.ADMIN_USERS) == Page.ADMIN_USERS


def test_unbanned_user_leaves_banned_page():
    nav = Navigator()
    nav.on_auth_change(BANNED)
    assert nav.on_auth_change(USER) == Page.HOME


def test_user_profile_needs_a_selection():
    nav = Navigator()
    nav.on_auth_change(USER)
    assert nav.navigate(Page.USER_PROFILE) == Page.HOME
    assert nav.navigate(Page.USER_PROFILE, "u9") == Page.USER_PROFILE
    assert nav.state() == {"page": "user-profile", "selected_user_id": "u9", "selected_chat_user_id": None}


def test_chat_remembers_peer():
    nav = Navigator()
    nav.on_auth_change(USER)
    assert nav.navigate(Page.CHAT, "u7") == Page.CHAT
    assert nav.selected_chat_user_id == "u7"


def test_logout_from_chat_goes_home():
    nav = Navigator()
    nav.on_auth_change(USER)
    nav.navigate(Page.CHAT, "u7")
    assert nav.on_auth_change(GUEST) == Page.HOME
