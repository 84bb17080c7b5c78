"""
FastAPI dependencies.

The search stack is built once by the app lifespan and lives on
app.state; routes reach it through these providers so tests can install
a stack built from fakes.
"""

from fastapi import Depends, Request

from search.analytics import AnalyticsTracker
from search.factory import SearchStack
from search.orchestrator import SearchOrchestrator


def get_stack(request: Request) -> SearchStack:
    return request.app.state.search_stack


def get_orchestrator(stack: SearchStack = Depends(get_stack)) -> SearchOrchestrator:
    return stack.orchestrator


def get_tracker(stack: SearchStack = Depends(get_stack)) -> AnalyticsTracker:
    return stack.tracker
