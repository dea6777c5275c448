import pytest

from cadavrix.grid.authz import Capabilities, Principal, capabilities_for, require
from cadavrix.grid.errors import NotAuthorized


def test_artist_can_claim_and_finalize_only():
    caps = capabilities_for(Principal("alice"))
    assert caps == Capabilities(can_claim=True, can_finalize=True, can_administer=False)


def test_admin_has_everything():
    caps = capabilities_for(Principal("root", role="admin"))
    assert caps.can_claim and caps.can_finalize and caps.can_administer


def test_unknown_role_gets_nothing():
    caps = capabilities_for(Principal("x", role="visitor"))  # type: ignore[arg-type]
    assert caps == Capabilities()


@pytest.mark.parametrize("capability", ["can_claim", "can_finalize"])
def test_require_passes_for_artist(capability):
    assert require(Principal("alice"), capability).can_claim


def test_require_raises_not_authorized():
    with pytest.raises(NotAuthorized):
        require(Principal("alice"), "can_administer")
