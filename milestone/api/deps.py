from typing import Optional
from fastapi import Request

from ..services.ai_advisor import AIAdvisor
from ..services.task_queue import OutboundTaskQueue


def get_task_queue(request: Request) -> Optional[OutboundTaskQueue]:
    """Outbound queue started in the application lifespan"""
    return getattr(request.app.state, "task_queue", None)


def get_advisor(request: Request) -> AIAdvisor:
    advisor = getattr(request.app.state, "advisor", None)
    return advisor or AIAdvisor()
