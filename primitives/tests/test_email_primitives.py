"""
Email primitive tests: sending and the subscriber state machine.

    new → PENDING (double opt-in) | SUBSCRIBED
    UNSUBSCRIBED → PENDING | SUBSCRIBED
    SUBSCRIBED → no-op
    unsubscribe from some lists → lists shrink; from all → UNSUBSCRIBED
"""

import pytest

from primitives.catalog.email import render_merge_tags
from primitives.catalog.records import EmailTemplate, Subscriber, SubscriberStatus, now_utc
from primitives.kernel.types import ErrorKind


def add_subscriber(store, **fields):
    fields.setdefault("email", "ann@example.com")
    fields.setdefault("status", SubscriberStatus.SUBSCRIBED)
    return store.subscribers.add(Subscriber(**fields))


# ============================================================================
# email.subscribe
# ============================================================================


class TestSubscribe:
    async def test_new_address_with_double_opt_in(self, store, mailer, ctx, invoke):
        result = await invoke("email.subscribe", email="a@b.com", requireDoubleOptIn=True)

        assert result.success is True
        assert result.data["requiresConfirmation"] is True
        saved = await store.subscribers.get_by_email("a@b.com")
        assert saved.status == SubscriberStatus.PENDING
        assert saved.lists == ["newsletter"]
        assert len(saved.confirmation_token) == 64

        assert len(mailer.sent) == 1
        assert mailer.sent[0].to == "a@b.com"
        assert f"{ctx.site_url}/email/confirm?token={saved.confirmation_token}" in mailer.sent[0].html

    async def test_double_opt_in_is_the_default(self, store, invoke):
        await invoke("email.subscribe", email="a@b.com")
        assert (await store.subscribers.get_by_email("a@b.com")).status == SubscriberStatus.PENDING

    async def test_new_address_without_opt_in(self, store, mailer, invoke):
        result = await invoke("email.subscribe", email=" A@B.com ", requireDoubleOptIn=False, lists=["deals"])

        assert result.data["requiresConfirmation"] is False
        saved = await store.subscribers.get_by_email("a@b.com")
        assert saved.status == SubscriberStatus.SUBSCRIBED
        assert saved.subscribed_at is not None
        assert saved.lists == ["deals"]
        assert mailer.sent == []

    async def test_already_subscribed_is_a_no_op(self, store, mailer, invoke):
        add_subscriber(store, lists=["newsletter"])
        result = await invoke("email.subscribe", email="ann@example.com", lists=["deals"])

        assert result.data["alreadySubscribed"] is True
        assert (await store.subscribers.get_by_email("ann@example.com")).lists == ["newsletter"]
        assert mailer.sent == []

    async def test_resubscribe_clears_unsubscribed_at(self, store, invoke):
        add_subscriber(
            store,
            status=SubscriberStatus.UNSUBSCRIBED,
            unsubscribed_at=now_utc(),
            unsubscribe_reason="too many",
            lists=[],
        )
        await invoke("email.subscribe", email="ann@example.com", requireDoubleOptIn=False, lists=["deals"])

        saved = await store.subscribers.get_by_email("ann@example.com")
        assert saved.status == SubscriberStatus.SUBSCRIBED
        assert saved.unsubscribed_at is None
        assert saved.unsubscribe_reason is None
        assert saved.lists == ["deals"]

    async def test_resubscribe_with_opt_in_goes_pending(self, store, mailer, invoke):
        add_subscriber(store, status=SubscriberStatus.UNSUBSCRIBED, unsubscribed_at=now_utc())
        result = await invoke("email.subscribe", email="ann@example.com")
        assert result.data["requiresConfirmation"] is True
        assert (await store.subscribers.get_by_email("ann@example.com")).status == SubscriberStatus.PENDING
        assert len(mailer.sent) == 1

    async def test_pending_resubscribe_resends_with_new_token(self, store, mailer, invoke):
        add_subscriber(store, status=SubscriberStatus.PENDING, confirmation_token="old")
        await invoke("email.subscribe", email="ann@example.com")
        saved = await store.subscribers.get_by_email("ann@example.com")
        assert saved.confirmation_token not in (None, "old")
        assert len(mailer.sent) == 1

    async def test_pending_without_opt_in_becomes_subscribed(self, store, invoke):
        add_subscriber(store, status=SubscriberStatus.PENDING, confirmation_token="old")
        await invoke("email.subscribe", email="ann@example.com", requireDoubleOptIn=False)
        saved = await store.subscribers.get_by_email("ann@example.com")
        assert saved.status == SubscriberStatus.SUBSCRIBED
        assert saved.confirmation_token is None

    async def test_failed_confirmation_send_still_saves(self, store, mailer, invoke):
        mailer.fail_for.add("a@b.com")
        result = await invoke("email.subscribe", email="a@b.com")
        assert result.success is True
        assert result.data["confirmationSent"] is False
        assert (await store.subscribers.get_by_email("a@b.com")).status == SubscriberStatus.PENDING

    async def test_invalid_address(self, invoke):
        result = await invoke("email.subscribe", email="not-an-email")
        assert result.error_kind == ErrorKind.VALIDATION


# ============================================================================
# email.confirm
# ============================================================================


class TestConfirm:
    async def test_confirm_moves_pending_to_subscribed(self, store, invoke):
        await invoke("email.subscribe", email="a@b.com")
        token = (await store.subscribers.get_by_email("a@b.com")).confirmation_token

        result = await invoke("email.confirm", token=token)

        assert result.success is True
        saved = await store.subscribers.get_by_email("a@b.com")
        assert saved.status == SubscriberStatus.SUBSCRIBED
        assert saved.confirmation_token is None
        assert saved.subscribed_at is not None

    async def test_token_is_single_use(self, store, invoke):
        await invoke("email.subscribe", email="a@b.com")
        token = (await store.subscribers.get_by_email("a@b.com")).confirmation_token
        await invoke("email.confirm", token=token)

        again = await invoke("email.confirm", token=token)
        assert again.error_kind == ErrorKind.NOT_FOUND

    async def test_unknown_token(self, invoke):
        result = await invoke("email.confirm", token="nope")
        assert result.error_kind == ErrorKind.NOT_FOUND


# ============================================================================
# email.unsubscribe
# ============================================================================


class TestUnsubscribe:
    async def test_partial_unsubscribe_keeps_subscribed(self, store, invoke):
        add_subscriber(store, lists=["A", "B"])
        result = await invoke("email.unsubscribe", email="ann@example.com", lists=["A"])

        assert result.data["fullyUnsubscribed"] is False
        saved = await store.subscribers.get_by_email("ann@example.com")
        assert saved.status == SubscriberStatus.SUBSCRIBED
        assert saved.lists == ["B"]
        assert saved.unsubscribed_at is None

    async def test_removing_every_list_unsubscribes(self, store, invoke):
        add_subscriber(store, lists=["A", "B"])
        result = await invoke("email.unsubscribe", email="ann@example.com", lists=["A", "B"], reason="moving")

        assert result.data["fullyUnsubscribed"] is True
        saved = await store.subscribers.get_by_email("ann@example.com")
        assert saved.status == SubscriberStatus.UNSUBSCRIBED
        assert saved.lists == []
        assert saved.unsubscribe_reason == "moving"
        assert saved.unsubscribed_at is not None

    async def test_no_lists_means_all(self, store, invoke):
        add_subscriber(store, lists=["A", "B"])
        await invoke("email.unsubscribe", email="ann@example.com")
        assert (await store.subscribers.get_by_email("ann@example.com")).status == SubscriberStatus.UNSUBSCRIBED

    async def test_unknown_list_leaves_membership(self, store, invoke):
        add_subscriber(store, lists=["A"])
        await invoke("email.unsubscribe", email="ann@example.com", lists=["Z"])
        saved = await store.subscribers.get_by_email("ann@example.com")
        assert saved.status == SubscriberStatus.SUBSCRIBED
        assert saved.lists == ["A"]

    async def test_unsubscribing_twice(self, store, invoke):
        add_subscriber(store, lists=["A"])
        await invoke("email.unsubscribe", email="ann@example.com")
        result = await invoke("email.unsubscribe", email="ann@example.com")
        assert result.success is True
        assert result.message == "Already unsubscribed"

    async def test_unknown_address(self, invoke):
        result = await invoke("email.unsubscribe", email="ghost@example.com")
        assert result.error_kind == ErrorKind.NOT_FOUND


# ============================================================================
# Preferences and status
# ============================================================================


class TestPreferences:
    async def test_update_preferences(self, store, invoke):
        add_subscriber(store, lists=["A"], preferences={"format": "html"})
        result = await invoke("email.updatePreferences", email="ann@example.com", lists=["A", "B"], frequency="weekly")

        info = result.data["subscriber"]
        assert info["lists"] == ["A", "B"]
        assert info["preferences"] == {"format": "html", "frequency": "weekly"}

    async def test_bad_frequency(self, store, invoke):
        add_subscriber(store)
        result = await invoke("email.updatePreferences", email="ann@example.com", frequency="hourly")
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_update_unknown(self, invoke):
        result = await invoke("email.updatePreferences", email="ghost@example.com", lists=[])
        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.parametrize(
        "status, subscribed",
        [(SubscriberStatus.SUBSCRIBED, True), (SubscriberStatus.PENDING, False), (SubscriberStatus.UNSUBSCRIBED, False)],
    )
    async def test_status(self, store, invoke, status, subscribed):
        add_subscriber(store, status=status)
        result = await invoke("email.getSubscriptionStatus", email="ANN@example.com")
        assert result.data["subscribed"] is subscribed
        assert result.data["status"] == status.value

    async def test_status_unknown(self, invoke):
        result = await invoke("email.getSubscriptionStatus", email="ghost@example.com")
        assert result.data == {"subscribed": False, "status": "NOT_FOUND", "message": "ghost@example.com is not subscribed"}


# ============================================================================
# email.send
# ============================================================================


class TestSend:
    async def test_one_send_per_recipient(self, mailer, invoke):
        result = await invoke(
            "email.send",
            to=[{"email": "a@b.com", "name": "A"}, {"email": "c@d.com"}],
            subject="Hello",
            text="Hi there",
        )
        assert result.success is True
        assert result.data["sent"] == 2
        assert [m.to for m in mailer.sent] == ["a@b.com", "c@d.com"]

    async def test_partial_failure_reports_each_recipient(self, mailer, invoke):
        mailer.fail_for.add("c@d.com")
        result = await invoke("email.send", to=[{"email": "a@b.com"}, {"email": "c@d.com"}], subject="Hi", html="<p>Hi</p>")

        assert result.success is False
        assert result.error_kind == ErrorKind.UNEXPECTED
        assert "c@d.com" in result.message
        assert [r["success"] for r in result.data["results"]] == [True, False]

    async def test_body_required(self, invoke):
        result = await invoke("email.send", to=[{"email": "a@b.com"}], subject="Hi")
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_empty_recipient_list_rejected(self, invoke):
        result = await invoke("email.send", to=[], subject="Hi", text="x")
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_no_sender_configured(self, dispatcher, ctx):
        ctx.mailer = None
        result = await dispatcher.invoke("email.send", {"to": [{"email": "a@b.com"}], "subject": "Hi", "text": "x"}, ctx)
        assert result.error_kind == ErrorKind.UNEXPECTED


# ============================================================================
# email.sendTemplate
# ============================================================================


@pytest.fixture
def welcome(store):
    return store.email_templates.add(
        EmailTemplate(
            id="t-welcome",
            name="Welcome",
            subject="Welcome, {{ firstName }}!",
            html_content="<p>Hi {{firstName}}, your code is {{ offer.code }}.</p>",
            text_content="Hi {{firstName}}, your code is {{offer.code}}.{{missing}}",
        )
    )


@pytest.mark.parametrize(
    "template, expected",
    [
        ("Hi {{name}}", "Hi Ann"),
        ("Hi {{ name }}", "Hi Ann"),
        ("{{order.number}}", "1001"),
        ("{{order.nope}}|{{nope}}", "|"),
    ],
)
def test_render_merge_tags(template, expected):
    assert render_merge_tags(template, {"name": "Ann", "order": {"number": 1001}}) == expected


def test_render_merge_tags_escapes_html():
    assert render_merge_tags("<b>{{name}}</b>", {"name": "<Ann & Co>"}, escape=True) == "<b>&lt;Ann &amp; Co&gt;</b>"


class TestSendTemplate:
    async def test_fills_merge_tags(self, welcome, mailer, invoke):
        result = await invoke(
            "email.sendTemplate",
            templateId="t-welcome",
            to={"email": "Ann@Example.com", "name": "Ann"},
            data={"firstName": "Ann", "offer": {"code": "HELLO10"}},
            **{"from": {"email": "shop@example.com", "name": "The Shop"}},
        )

        assert result.success is True
        assert result.data["template"] == "Welcome"
        [sent] = mailer.sent
        assert sent.to == "ann@example.com"
        assert sent.subject == "Welcome, Ann!"
        assert sent.html == "<p>Hi Ann, your code is HELLO10.</p>"
        assert sent.text == "Hi Ann, your code is HELLO10."
        assert sent.from_address == "The Shop <shop@example.com>"

    async def test_unknown_template(self, invoke):
        result = await invoke("email.sendTemplate", templateId="nope", to={"email": "a@b.com"})
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert result.message == "Email template not found"

    async def test_inactive_template(self, store, welcome, mailer, invoke):
        store.email_templates.templates["t-welcome"].is_active = False

        result = await invoke("email.sendTemplate", templateId="t-welcome", to={"email": "a@b.com"})

        assert result.error_kind == ErrorKind.DOMAIN_RULE
        assert mailer.sent == []

    async def test_send_failure(self, welcome, mailer, invoke):
        mailer.fail_for.add("a@b.com")

        result = await invoke("email.sendTemplate", templateId="t-welcome", to={"email": "a@b.com"})

        assert result.error_kind == ErrorKind.UNEXPECTED
        assert result.data["error"] == "delivery to a@b.com rejected"
