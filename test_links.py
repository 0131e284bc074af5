from datetime import timedelta
from decimal import Decimal

import pytest

from core.errors import LinkExhausted, LinkExpired, LinkNotFound
from core.links import LinkResolver
from utilities.timeutils import utcnow


def test_resolves_active_link(db, make_link):
    link = make_link(max_downloads=3, custom_message="Thanks for the support")

    resolved = LinkResolver(db).resolve(link.link_code)

    assert resolved.id == link.id
    assert resolved.file.title == "Design Kit"


def test_unknown_code_is_not_found(db):
    with pytest.raises(LinkNotFound) as exc:
        LinkResolver(db).resolve("missing123")
    assert exc.value.to_dict() == {"error": "link_not_found", "link_code": "missing123"}


def test_deactivated_link_is_not_found(db, make_link):
    link = make_link()
    link.is_active = False
    db.commit()

    with pytest.raises(LinkNotFound):
        LinkResolver(db).resolve(link.link_code)


def test_link_to_inactive_file_is_not_found(db, make_link, protected_file):
    link = make_link()
    protected_file.is_active = False
    db.commit()

    with pytest.raises(LinkNotFound):
        LinkResolver(db).resolve(link.link_code)


def test_expired_link(db, make_link):
    link = make_link(expires_at=utcnow() - timedelta(minutes=1))

    with pytest.raises(LinkExpired):
        LinkResolver(db).resolve(link.link_code)


def test_expiry_is_checked_before_quota(db, make_link):
    link = make_link(max_downloads=1, expires_at=utcnow() - timedelta(days=1))
    link.current_downloads = 1
    db.commit()

    with pytest.raises(LinkExpired):
        LinkResolver(db).resolve(link.link_code)


def test_exhausted_link(db, make_link):
    link = make_link(max_downloads=2)
    link.current_downloads = 2
    db.commit()

    with pytest.raises(LinkExhausted) as exc:
        LinkResolver(db).resolve(link.link_code)
    assert exc.value.status_code == 410


def test_expiry_uses_injected_clock(db, make_link):
    expires_at = utcnow() + timedelta(hours=1)
    link = make_link(expires_at=expires_at)

    LinkResolver(db).resolve(link.link_code)
    with pytest.raises(LinkExpired):
        LinkResolver(db, now=lambda: expires_at + timedelta(seconds=1)).resolve(link.link_code)


def test_describe_link(db, make_link):
    link = make_link(max_downloads=5, custom_price=Decimal("12.00"))
    link.current_downloads = 2
    db.commit()

    data = LinkResolver.describe(LinkResolver(db).resolve(link.link_code))

    assert data["price"] == "12.00"
    assert data["currency"] == "USD"
    assert data["downloads_left"] == 3
    assert data["expires_at"] is None
    assert data["file"]["title"] == "Design Kit"
    assert data["file"]["price"] == "50.00"
