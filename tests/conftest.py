"""
Pytest 配置和公共 fixtures
"""
import pytest

from process_engine.services import build_in_memory_services

from definitions import (
    SIMPLE_TASK, EXCLUSIVE_CHOICE, PARALLEL_APPROVAL, INCLUSIVE_REVIEW,
    MESSAGE_WAIT, TIMER_WAIT, TERMINATE_RACE, ERROR_END, ORDER_BPMN
)


# 配置 pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest.fixture
def services():
    """使用内存存储的引擎组件"""
    return build_in_memory_services(sweep_interval=0.01)


@pytest.fixture
def engine(services):
    return services.engine


@pytest.fixture
def store(services):
    return services.definitions


@pytest.fixture
def simple_task_definition() -> dict:
    """start1 -> task1（分配给用户 42）-> end1"""
    return SIMPLE_TASK


@pytest.fixture
def exclusive_definition() -> dict:
    return EXCLUSIVE_CHOICE


@pytest.fixture
def parallel_definition() -> dict:
    return PARALLEL_APPROVAL


@pytest.fixture
def inclusive_definition() -> dict:
    return INCLUSIVE_REVIEW


@pytest.fixture
def message_definition() -> dict:
    return MESSAGE_WAIT


@pytest.fixture
def timer_definition() -> dict:
    return TIMER_WAIT


@pytest.fixture
def terminate_definition() -> dict:
    return TERMINATE_RACE


@pytest.fixture
def error_end_definition() -> dict:
    return ERROR_END


@pytest.fixture
def order_bpmn() -> str:
    return ORDER_BPMN
