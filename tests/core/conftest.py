"""core 测试配置 -- 引擎服务 fixture"""

import pytest_asyncio

from intentflow.core.dependencies import DependencyGraph
from intentflow.core.plan import PlanReconciler
from intentflow.core.tasks import TaskManager


@pytest_asyncio.fixture
async def manager(store_group) -> TaskManager:
    """TaskManager 实例"""
    return TaskManager(store_group)


@pytest_asyncio.fixture
async def graph(store_group) -> DependencyGraph:
    """DependencyGraph 实例"""
    return DependencyGraph(store_group)


@pytest_asyncio.fixture
async def reconciler(store_group) -> PlanReconciler:
    """PlanReconciler 实例"""
    return PlanReconciler(store_group)
