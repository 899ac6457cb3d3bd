import dramatiq
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import AsyncIO

from drammtiq_tasks.expire_agreements import (
    EXPIRE_AGREEMENTS_ACTOR,
    create_agreement_expiry_task,
)


def test_expiry_actor_registers_and_enqueues():
    broker = StubBroker()
    broker.add_middleware(AsyncIO())
    dramatiq.set_broker(broker)

    actor = create_agreement_expiry_task()
    actor.send()

    assert actor.actor_name == EXPIRE_AGREEMENTS_ACTOR
    assert EXPIRE_AGREEMENTS_ACTOR in broker.get_declared_actors()
    assert broker.queues["expire_due_agreements"].qsize() == 1
