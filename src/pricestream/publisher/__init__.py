from pricestream.publisher.cycle import PRICE_FEED_SCHEMA, PRICE_UPDATE_EVENT_ID, PublishCycle
from pricestream.publisher.orchestrator import run_publisher
from pricestream.publisher.supervisor import TaskSupervisor

__all__ = [
    "PRICE_FEED_SCHEMA",
    "PRICE_UPDATE_EVENT_ID",
    "PublishCycle",
    "TaskSupervisor",
    "run_publisher",
]
