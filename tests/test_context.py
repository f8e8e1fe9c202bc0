"""Tests for ConnectionContext lifecycle and flag handling."""

import gc
import logging
import weakref
from unittest.mock import Mock

import pytest

from ad_context.config import IniPolicy
from ad_context.constants import DEFAULT_LDAP_PAGE_SIZE, NO_FLAGS, AuthFlags, SaslState
from ad_context.context import ConnectionContext, ContextRef, destroy, set_sasl_wrap_flags
from ad_context.errors import ContextReleasedError, PolicyError
from ad_context.models import Ownership, string_fields


PLAIN_POLICY = "[global]\nclient ldap sasl wrapping = plain\nldap page size = 500\n"


class BrokenPolicy:
    """Policy source whose lookups always fail."""

    def client_ldap_sasl_wrapping(self):
        raise PolicyError("no wrapping configured")

    def ldap_page_size(self):
        raise PolicyError("no page size configured")


@pytest.fixture
def plain_policy():
    return IniPolicy.from_string(PLAIN_POLICY)


def make_context(policy, sasl_state=SaslState.PLAIN):
    return ConnectionContext.init("CORP.EXAMPLE.COM", "CORP", "dc01.corp.example.com", sasl_state, policy)


def fill_all_strings(ctx):
    for group in (ctx.server, ctx.auth, ctx.config):
        for name in string_fields(group):
            setattr(group, name, f"{name}-value")


class TestInit:
    """Test context construction."""

    def test_copies_server_identity(self, plain_policy):
        ctx = make_context(plain_policy)
        assert ctx.server.realm == "CORP.EXAMPLE.COM"
        assert ctx.server.workgroup == "CORP"
        assert ctx.server.ldap_server == "dc01.corp.example.com"

    def test_absent_strings_stay_absent(self, plain_policy):
        ctx = ConnectionContext.init(None, None, None, SaslState.PLAIN, plain_policy)
        assert ctx.server.realm is None
        assert ctx.server.workgroup is None
        assert ctx.server.ldap_server is None

    def test_other_fields_start_zeroed(self, plain_policy):
        ctx = make_context(plain_policy)
        assert all(v is None for v in string_fields(ctx.auth).values())
        assert all(v is None for v in string_fields(ctx.config).values())
        assert ctx.transport is None

    def test_is_owned(self, plain_policy):
        ctx = make_context(plain_policy)
        assert ctx.ownership is Ownership.OWNED
        assert ctx.owns_self is True
        assert ctx.is_released is False

    @pytest.mark.parametrize("state, expected", [
        (SaslState.PLAIN, NO_FLAGS),
        (SaslState.SIGN, AuthFlags.SASL_SIGN),
        (SaslState.SEAL, AuthFlags.SASL_SEAL),
    ])
    def test_sasl_state_bits(self, plain_policy, state, expected):
        assert make_context(plain_policy, state).auth.flags == expected

    def test_sasl_state_is_ored_onto_policy_flags(self):
        policy = IniPolicy.from_string("[global]\nclient ldap sasl wrapping = sign\n")
        ctx = make_context(policy, SaslState.SEAL)
        assert ctx.auth.flags == AuthFlags.SASL_SIGN | AuthFlags.SASL_SEAL

    def test_page_size_from_policy(self, plain_policy):
        assert make_context(plain_policy).config.ldap_page_size == 500

    def test_default_policy(self):
        ctx = ConnectionContext.init("EXAMPLE.COM", None, None)
        assert ctx.auth.flags == AuthFlags.SASL_SIGN
        assert ctx.config.ldap_page_size == DEFAULT_LDAP_PAGE_SIZE

    def test_policy_errors_degrade_to_defaults(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ad_context.context"):
            ctx = make_context(BrokenPolicy(), SaslState.SIGN)
        assert ctx.auth.flags == AuthFlags.SASL_SIGN
        assert ctx.config.ldap_page_size == DEFAULT_LDAP_PAGE_SIZE
        assert "no wrapping configured" in caplog.text

    def test_invalid_ini_wrapping_degrades_to_empty(self):
        policy = IniPolicy.from_string("[global]\nclient ldap sasl wrapping = maybe\n")
        assert make_context(policy).auth.flags == NO_FLAGS


class TestSetSaslWrapFlags:
    """Test the SASL wrap flag mutator."""

    def test_none_context_fails(self):
        assert set_sasl_wrap_flags(None, AuthFlags.SASL_SIGN) is False

    def test_sign_replaces_seal_and_keeps_other_bits(self, plain_policy):
        ctx = make_context(plain_policy, SaslState.SEAL)
        ctx.auth.flags |= AuthFlags.SIMPLE_BIND | AuthFlags.USER_CREDS

        assert set_sasl_wrap_flags(ctx, AuthFlags.SASL_SIGN) is True

        assert ctx.auth.flags & AuthFlags.SASL_SIGN
        assert not ctx.auth.flags & AuthFlags.SASL_SEAL
        assert ctx.auth.flags == AuthFlags.SASL_SIGN | AuthFlags.SIMPLE_BIND | AuthFlags.USER_CREDS

    def test_clearing_wrap_bits(self, plain_policy):
        ctx = make_context(plain_policy, SaslState.SIGN)
        ctx.auth.flags |= AuthFlags.DISABLE_KERBEROS
        ctx.set_sasl_wrap_flags(NO_FLAGS)
        assert ctx.auth.flags == AuthFlags.DISABLE_KERBEROS

    def test_accepts_plain_int_and_keeps_unknown_bits(self, plain_policy):
        ctx = make_context(plain_policy)
        ctx.auth.flags = AuthFlags(0x1000 | 0x40)
        ctx.set_sasl_wrap_flags(0x20)
        assert int(ctx.auth.flags) == 0x1000 | 0x20

    def test_released_context_reports_false(self, plain_policy):
        ctx = make_context(plain_policy)
        destroy(ContextRef(ctx))
        assert set_sasl_wrap_flags(ctx, AuthFlags.SASL_SIGN) is False

    def test_released_context_raises(self, plain_policy):
        ctx = make_context(plain_policy)
        destroy(ContextRef(ctx))
        with pytest.raises(ContextReleasedError):
            ctx.set_sasl_wrap_flags(AuthFlags.SASL_SIGN)


class TestDestroy:
    """Test context teardown."""

    def test_none_ref_is_noop(self):
        destroy(None)

    def test_empty_ref_is_noop(self):
        ref = ContextRef()
        destroy(ref)
        assert ref.context is None

    def test_clears_handle(self, plain_policy):
        ref = ContextRef(make_context(plain_policy))
        destroy(ref)
        assert ref.context is None

    def test_second_destroy_is_noop(self, plain_policy):
        transport = Mock()
        ctx = make_context(plain_policy)
        ctx.attach_transport(transport)
        ref = ContextRef(ctx)

        destroy(ref)
        destroy(ref)

        transport.disconnect.assert_called_once_with()
        assert ref.context is None

    def test_releases_every_string_field(self, plain_policy):
        ctx = make_context(plain_policy, SaslState.SEAL)
        fill_all_strings(ctx)

        destroy(ContextRef(ctx))

        for group in (ctx.server, ctx.auth, ctx.config):
            assert all(v is None for v in string_fields(group).values())
        assert ctx.auth.flags == NO_FLAGS
        assert ctx.config.ldap_page_size == 0
        assert ctx.transport is None
        assert ctx.is_released is True

    def test_owned_context_is_freed(self, plain_policy):
        ref = ContextRef(make_context(plain_policy))
        fill_all_strings(ref.context)
        tracker = weakref.ref(ref.context)

        destroy(ref)
        gc.collect()

        assert tracker() is None

    def test_transport_teardown_runs_before_fields_are_released(self, plain_policy):
        ctx = make_context(plain_policy)
        seen = {}
        transport = Mock()
        transport.disconnect.side_effect = lambda: seen.update(realm=ctx.server.realm)
        ctx.attach_transport(transport)

        destroy(ContextRef(ctx))

        assert seen == {"realm": "CORP.EXAMPLE.COM"}

    def test_fields_released_even_if_teardown_fails(self, plain_policy):
        ctx = make_context(plain_policy)
        transport = Mock()
        transport.disconnect.side_effect = RuntimeError("socket already gone")
        ctx.attach_transport(transport)
        ref = ContextRef(ctx)

        with pytest.raises(RuntimeError):
            destroy(ref)

        assert ref.context is None
        assert ctx.server.realm is None
        assert ctx.is_released is True

    def test_context_manager_destroys(self, plain_policy):
        transport = Mock()
        with make_context(plain_policy) as ctx:
            ctx.attach_transport(transport)
            assert ctx.server.realm == "CORP.EXAMPLE.COM"
        transport.disconnect.assert_called_once_with()
        assert ctx.is_released is True


class TestAttachTransport:
    """Test transport registration."""

    def test_replacing_disconnects_previous(self, plain_policy):
        ctx = make_context(plain_policy)
        first, second = Mock(), Mock()
        ctx.attach_transport(first)
        ctx.attach_transport(second)
        first.disconnect.assert_called_once_with()
        assert ctx.transport is second

    def test_reattaching_same_transport_keeps_it_connected(self, plain_policy):
        ctx = make_context(plain_policy)
        transport = Mock()
        ctx.attach_transport(transport)
        ctx.attach_transport(transport)
        transport.disconnect.assert_not_called()


class TestBorrowed:
    """Test contexts initialised in caller-supplied storage."""

    def test_init_in_place(self, plain_policy):
        storage = ConnectionContext()
        ctx = ConnectionContext.init_borrowed(storage, "EXAMPLE.COM", None, None, SaslState.SIGN, plain_policy)
        assert ctx is storage
        assert ctx.ownership is Ownership.BORROWED
        assert ctx.owns_self is False
        assert ctx.auth.flags == AuthFlags.SASL_SIGN

    def test_destroy_zeroes_but_keeps_storage_usable(self, plain_policy):
        storage = ConnectionContext()
        ConnectionContext.init_borrowed(storage, "EXAMPLE.COM", "EXAMPLE", None, SaslState.SEAL, plain_policy)
        ref = ContextRef(storage)

        destroy(ref)

        assert ref.context is None
        assert storage.is_released is False
        assert storage.server.realm is None
        assert storage.auth.flags == NO_FLAGS
        assert storage.set_sasl_wrap_flags(AuthFlags.SASL_SIGN) is True

    def test_storage_can_be_reinitialised(self, plain_policy):
        storage = ConnectionContext()
        ConnectionContext.init_borrowed(storage, "ONE.COM", None, None, SaslState.PLAIN, plain_policy)
        destroy(ContextRef(storage))
        ConnectionContext.init_borrowed(storage, "TWO.COM", None, None, SaslState.PLAIN, plain_policy)
        assert storage.server.realm == "TWO.COM"

    def test_released_owned_context_cannot_be_borrowed(self, plain_policy):
        ctx = make_context(plain_policy)
        destroy(ContextRef(ctx))
        with pytest.raises(ContextReleasedError):
            ConnectionContext.init_borrowed(ctx, "EXAMPLE.COM", None, None, SaslState.PLAIN, plain_policy)


class TestPageSize:
    """Test page size reduction."""

    def test_halves(self, plain_policy):
        ctx = make_context(plain_policy)
        assert ctx.reduce_page_size() == 250
        assert ctx.config.ldap_page_size == 250

    def test_never_below_one(self, plain_policy):
        ctx = make_context(plain_policy)
        ctx.config.ldap_page_size = 1
        assert ctx.reduce_page_size() == 1


class TestToDict:
    """Test the context summary."""

    def test_masks_password(self, plain_policy):
        ctx = make_context(plain_policy, SaslState.SIGN)
        ctx.auth.password = "P@ssw0rd!"
        summary = ctx.to_dict()
        assert summary["ownership"] == "owned"
        assert summary["auth"]["password"] == "********"
        assert summary["auth"]["flags"] == 0x20
        assert summary["server"]["workgroup"] == "CORP"
