import dramatiq

from services.agreement_expiry_service import AgreementExpiryRunner

EXPIRE_AGREEMENTS_ACTOR = "expire_due_agreements"


def create_agreement_expiry_task():
    @dramatiq.actor(
        actor_name=EXPIRE_AGREEMENTS_ACTOR,
        queue_name="expire_due_agreements",
        max_retries=3,
        time_limit=600_000,
    )
    async def expire_due_agreements():
        return await AgreementExpiryRunner().run()

    return expire_due_agreements
