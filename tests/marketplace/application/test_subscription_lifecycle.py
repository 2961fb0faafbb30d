"""Application tests for subscription lifecycle, payment activation and expiry."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.exceptions import IllegalTransition, Unauthorized
from marketplace.payment.initiation import InitiatePayment
from marketplace.payment.payment import Payment, PaymentStatus
from marketplace.payment.reconciliation import ApplyGatewayCallback
from marketplace.subscription.expiry import process_expiring_subscriptions
from marketplace.subscription.lifecycle import (
    REPLACED_REASON,
    CancelSubscription,
    ChangeSubscriptionPlan,
    ResumeSubscription,
    SuspendSubscription,
)
from marketplace.subscription.subscription import Subscription, SubscriptionStatus
from protean import current_domain
from protean.exceptions import ValidationError


def _reload(subscription):
    return current_domain.repository_for(Subscription).get(subscription.id)


def _pay_subscription(subscription, gateway):
    """Pay for a subscription with Airtel Money and deliver the paid callback."""
    payment_id = current_domain.process(
        InitiatePayment(
            subscription_id=str(subscription.id),
            method="airtel_money",
            payer_name="Seller One",
            payer_phone="077123456",
            actor_id=str(subscription.user_id),
            actor_role="customer",
        ),
        asynchronous=False,
    )
    payment = current_domain.repository_for(Payment).get(payment_id)
    current_domain.process(
        ApplyGatewayCallback(
            callback={
                "bill_id": payment.bill_id,
                "status": "paid",
                "amount": payment.amount,
                "signature": gateway.sign_callback(payment.bill_id, "paid", payment.amount),
            }
        ),
        asynchronous=False,
    )
    return current_domain.repository_for(Payment).get(payment_id)


class TestCreateSubscription:
    def test_paid_plan_waits_for_payment(self, make_plan, subscribe):
        subscription = subscribe(make_plan())

        assert subscription.status == SubscriptionStatus.PENDING.value
        assert subscription.amount == 30000
        assert subscription.reference.startswith(f"SUB-{datetime.now(UTC):%Y}-")

    def test_references_are_sequential(self, make_plan, subscribe):
        plan = make_plan()
        first = subscribe(plan, user_id="seller-001")
        second = subscribe(plan, user_id="seller-002")
        assert int(second.reference[-6:]) == int(first.reference[-6:]) + 1

    def test_trial_is_active_immediately(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=14)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.is_in_trial()

    def test_new_subscription_replaces_the_active_one(self, make_plan, subscribe):
        first = subscribe(make_plan(), trial_days=7)
        second = subscribe(make_plan(), trial_days=7)

        first = _reload(first)
        assert first.status == SubscriptionStatus.CANCELLED.value
        assert first.cancellation_reason == REPLACED_REASON
        assert current_domain.repository_for(Subscription).current_for_user("seller-001").id == second.id

    def test_inactive_plan_is_rejected(self, make_plan, subscribe):
        with pytest.raises(ValidationError):
            subscribe(make_plan(is_active=False))

    def test_customers_subscribe_only_themselves(self, make_plan):
        from marketplace.subscription.lifecycle import CreateSubscription

        with pytest.raises(Unauthorized):
            current_domain.process(
                CreateSubscription(
                    user_id="seller-001",
                    plan_id=str(make_plan().id),
                    actor_id="seller-002",
                    actor_role="customer",
                ),
                asynchronous=False,
            )


class TestActivationByPayment:
    def test_completed_payment_activates_subscription(self, make_plan, subscribe, gateway, notifier):
        subscription = subscribe(make_plan())

        payment = _pay_subscription(subscription, gateway)

        assert payment.status == PaymentStatus.COMPLETED.value
        subscription = _reload(subscription)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.ends_at - subscription.starts_at == timedelta(days=30)
        assert "subscription_activated" in notifier.templates()

    def test_paid_subscription_replacing_a_trial(self, make_plan, subscribe, gateway):
        trial = subscribe(make_plan(), trial_days=7)
        paid = subscribe(make_plan())
        assert _reload(trial).status == SubscriptionStatus.CANCELLED.value

        _pay_subscription(paid, gateway)
        assert _reload(paid).status == SubscriptionStatus.ACTIVE.value

    def test_active_subscription_cannot_be_paid_again(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)

        with pytest.raises(ValidationError) as exc:
            current_domain.process(
                InitiatePayment(
                    subscription_id=str(subscription.id),
                    method="airtel_money",
                    payer_phone="077123456",
                    actor_id=str(subscription.user_id),
                    actor_role="customer",
                ),
                asynchronous=False,
            )

        assert "subscription_id" in exc.value.messages
        assert current_domain.repository_for(Payment).query.filter(subscription_id=str(subscription.id)).all().total == 0


class TestChangePlan:
    def _change(self, subscription, plan, **options):
        return current_domain.process(
            ChangeSubscriptionPlan(
                subscription_id=str(subscription.id),
                plan_id=str(plan.id),
                actor_id=str(subscription.user_id),
                actor_role="customer",
                **options,
            ),
            asynchronous=False,
        )

    def test_upgrade_is_prorated(self, make_plan, subscribe):
        now = datetime.now(UTC)
        subscription = subscribe(make_plan(price=30000), trial_days=7, starts_at=now - timedelta(days=20))
        pro = make_plan(price=60000)

        amount = self._change(subscription, pro, as_of=now)

        assert amount == 10000
        subscription = _reload(subscription)
        assert str(subscription.plan_id) == str(pro.id)
        assert subscription.amount == 10000
        assert subscription.ends_at == now + timedelta(days=30)

    def test_without_proration_full_price_is_due(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        pro = make_plan(price=60000)
        assert self._change(subscription, pro, prorate=False) == 60000

    def test_deferred_change_waits_for_renewal(self, make_plan, subscribe):
        starter = make_plan()
        subscription = subscribe(starter, trial_days=7)
        pro = make_plan(price=60000)

        assert self._change(subscription, pro, immediately=False) is None

        subscription = _reload(subscription)
        assert str(subscription.plan_id) == str(starter.id)
        assert str(subscription.pending_plan_change.plan_id) == str(pro.id)

    def test_same_plan_is_rejected(self, make_plan, subscribe):
        plan = make_plan()
        subscription = subscribe(plan, trial_days=7)
        with pytest.raises(ValidationError):
            self._change(subscription, plan)

    def test_pending_subscription_cannot_change(self, make_plan, subscribe):
        subscription = subscribe(make_plan())
        with pytest.raises(ValidationError):
            self._change(subscription, make_plan(price=60000))


class TestAdministration:
    def test_owner_cancels(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        status = current_domain.process(
            CancelSubscription(
                subscription_id=str(subscription.id),
                reason="Closing shop",
                actor_id="seller-001",
                actor_role="customer",
            ),
            asynchronous=False,
        )
        assert status == SubscriptionStatus.CANCELLED.value

    def test_deferred_cancel_stops_auto_renewal(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        status = current_domain.process(
            CancelSubscription(
                subscription_id=str(subscription.id),
                immediately=False,
                actor_id="seller-001",
                actor_role="customer",
            ),
            asynchronous=False,
        )
        assert status == SubscriptionStatus.ACTIVE.value
        assert not _reload(subscription).auto_renew

    def test_admin_suspends_and_resumes(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        current_domain.process(
            SuspendSubscription(
                subscription_id=str(subscription.id),
                reason="Chargeback",
                actor_id="admin-001",
                actor_role="admin",
            ),
            asynchronous=False,
        )
        assert _reload(subscription).status == SubscriptionStatus.SUSPENDED.value

        status = current_domain.process(
            ResumeSubscription(subscription_id=str(subscription.id), actor_id="admin-001", actor_role="admin"),
            asynchronous=False,
        )
        assert status == SubscriptionStatus.ACTIVE.value

    def test_resume_retires_the_replacement(self, make_plan, subscribe):
        original = subscribe(make_plan(), trial_days=7)
        current_domain.process(
            SuspendSubscription(subscription_id=str(original.id), actor_id="admin-001", actor_role="admin"),
            asynchronous=False,
        )
        replacement = subscribe(make_plan(), trial_days=7)

        current_domain.process(
            ResumeSubscription(subscription_id=str(original.id), actor_id="admin-001", actor_role="admin"),
            asynchronous=False,
        )

        assert _reload(original).status == SubscriptionStatus.ACTIVE.value
        replacement = _reload(replacement)
        assert replacement.status == SubscriptionStatus.CANCELLED.value
        assert replacement.cancellation_reason == REPLACED_REASON
        active = (
            current_domain.repository_for(Subscription)
            .query.filter(user_id="seller-001", status=SubscriptionStatus.ACTIVE.value)
            .all()
        )
        assert active.total == 1

    def test_deferred_cancel_of_a_cancelled_subscription(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        cancel = dict(subscription_id=str(subscription.id), actor_id="seller-001", actor_role="customer")
        current_domain.process(CancelSubscription(reason="Closing shop", **cancel), asynchronous=False)

        with pytest.raises(IllegalTransition):
            current_domain.process(CancelSubscription(immediately=False, **cancel), asynchronous=False)

        assert _reload(subscription).cancellation_reason == "Closing shop"

    def test_customers_cannot_suspend(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        with pytest.raises(Unauthorized):
            current_domain.process(
                SuspendSubscription(
                    subscription_id=str(subscription.id),
                    actor_id="seller-001",
                    actor_role="customer",
                ),
                asynchronous=False,
            )


class TestExpirySweep:
    def test_renews_with_previous_payment_details(self, make_plan, subscribe, gateway):
        subscription = subscribe(make_plan())
        _pay_subscription(subscription, gateway)
        subscription = _reload(subscription)
        previous_end = subscription.ends_at

        summary = process_expiring_subscriptions(now=previous_end - timedelta(hours=12))

        assert summary == {"processed": 1, "renewed": 1, "expired": 0, "errors": 0}
        subscription = _reload(subscription)
        assert subscription.renewal_count == 1
        assert subscription.starts_at == previous_end
        assert subscription.ends_at == previous_end + timedelta(days=30)

        payments = current_domain.repository_for(Payment).query.filter(subscription_id=str(subscription.id)).all()
        assert payments.total == 2
        renewal = next(payment for payment in payments.items if payment.status != PaymentStatus.COMPLETED.value)
        assert renewal.method == "airtel_money"
        assert renewal.payer.phone == "077123456"

    def test_without_payment_history_renewal_fails(self, make_plan, subscribe, notifier):
        subscription = subscribe(make_plan(), trial_days=7)

        summary = process_expiring_subscriptions(now=subscription.ends_at - timedelta(hours=1))

        assert summary["expired"] == 1
        subscription = _reload(subscription)
        assert subscription.status == SubscriptionStatus.EXPIRED.value
        assert subscription.auto_renewal_failed
        assert "subscription_expired" in notifier.templates()

    def test_ended_subscriptions_expire(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7, auto_renew=False)

        summary = process_expiring_subscriptions(now=subscription.ends_at + timedelta(days=1))

        assert summary == {"processed": 1, "renewed": 0, "expired": 1, "errors": 0}
        subscription = _reload(subscription)
        assert subscription.status == SubscriptionStatus.EXPIRED.value
        assert not subscription.auto_renewal_failed

    def test_naive_sweep_time_is_read_as_utc(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7, auto_renew=False)
        naive = subscription.ends_at.astimezone(UTC).replace(tzinfo=None) + timedelta(days=1)

        summary = process_expiring_subscriptions(now=naive)

        assert summary == {"processed": 1, "renewed": 0, "expired": 1, "errors": 0}
        assert _reload(subscription).status == SubscriptionStatus.EXPIRED.value

    def test_subscriptions_far_from_their_end_are_untouched(self, make_plan, subscribe):
        subscription = subscribe(make_plan(), trial_days=7)
        summary = process_expiring_subscriptions()
        assert summary["processed"] == 0
        assert _reload(subscription).status == SubscriptionStatus.ACTIVE.value
