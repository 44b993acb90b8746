# tests/conftest.py
import os

os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("SQLITE_PATH", "./webprov_test.db")

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from webprov.db import build_engine, init_db
from webprov.errors import PermanentRemoteError
from webprov.orchestrator import Orchestrator
from webprov.queue_manager import JobQueue
from webprov.schemas.provisioning import ProvisioningRequest
from webprov.schemas.remote import ChatRef, DeploymentRef, DomainResult, ProjectRef
from webprov.services.store import ProvisioningStore
from webprov.webhook import WebhookNotifier
from webprov.worker import WorkerPool

START_TS = 1_700_000_000.0


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, start: float = START_TS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeExternalClient:
    """In-memory stand-in for the generation and deployment services.

    `failures` maps a method name to exceptions raised (in order) before the
    method starts succeeding; `calls` records every invocation.
    """

    def __init__(self):
        self.projects = {}
        self.chats = {}
        self.deployments = {}
        self.domains = []
        self.calls = []
        self.failures = {}
        self.chat_version = "ver_1"
        self.domain_result = True

    def _enter(self, name: str):
        self.calls.append(name)
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def ensure_project(self, name, description):
        self._enter("ensure_project")
        project = ProjectRef(id=f"prj_{self.count('ensure_project')}", name=name)
        self.projects[project.id] = project
        return project

    async def get_project_by_id(self, project_id):
        self._enter("get_project_by_id")
        return self.projects.get(project_id)

    async def ensure_chat(self, project_id, system_prompt, message, model_config):
        self._enter("ensure_chat")
        chat = ChatRef(id=f"chat_{self.count('ensure_chat')}", latest_version_id=self.chat_version)
        if not chat.latest_version_id:
            raise PermanentRemoteError("chat has no generated version")
        self.chats[chat.id] = chat
        return chat

    async def get_chat_by_id(self, chat_id):
        self._enter("get_chat_by_id")
        return self.chats.get(chat_id)

    async def find_existing_deployment(self, project_id, chat_id, version_id):
        self._enter("find_existing_deployment")
        return self.deployments.get((project_id, chat_id, version_id))

    async def create_deployment(self, project_id, chat_id, version_id):
        self._enter("create_deployment")
        n = len(self.deployments) + 1
        deployment = DeploymentRef(
            id=f"dpl_{n}",
            inspector_url=f"https://vercel.com/trady/{project_id}-site/dpl_{n}",
            web_url=f"https://{project_id}-site.vercel.app",
        )
        self.deployments[(project_id, chat_id, version_id)] = deployment
        return deployment

    async def attach_domain(self, domain, deployment_id, target_project_slug):
        self._enter("attach_domain")
        if not self.domain_result:
            return None
        self.domains.append((domain, target_project_slug))
        return DomainResult(name=domain, verified=True)

    async def list_projects(self):
        self._enter("list_projects")
        return list(self.projects.values())

    async def list_chats(self, limit=10):
        self._enter("list_chats")
        return list(self.chats.values())[:limit]

    async def aclose(self):
        return None


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory):
    return ProvisioningStore(session_factory)


@pytest.fixture
def queue(session_factory, clock):
    return JobQueue(session_factory, max_attempts=3, backoff_base=2, clock=clock)


@pytest.fixture
def fake_client():
    return FakeExternalClient()


@pytest.fixture
def orchestrator(store, fake_client):
    return Orchestrator(store, fake_client, domain_suffix="trady.finance")


@pytest.fixture
def webhook_calls():
    return []


@pytest.fixture
def notifier(webhook_calls):
    """Notifier that records events instead of posting them"""

    class RecordingNotifier(WebhookNotifier):
        async def notify(self, event):
            webhook_calls.append(event.to_payload())
            return True

    return RecordingNotifier(url="http://hooks.test/done")


@pytest.fixture
def pool(queue, orchestrator, notifier):
    return WorkerPool(queue, orchestrator, notifier, size=1, poll_interval=0.01, stall_timeout=60)


@pytest.fixture
def make_request():
    def _make(owner="Alice_01!", message="A landing page for a bakery", app_name=None):
        return ProvisioningRequest(owner=owner, message=message, description="bakery site", app_name=app_name)
    return _make
