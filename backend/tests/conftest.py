import threading
from decimal import Decimal

import pytest

from backend.app import create_app
from backend.app.database import db
from backend.app.errors import NotFoundError, RemoteError


# ---------------------------------------------------------------------------
#  Fakes for the remote services
# ---------------------------------------------------------------------------
class FakeObjectStore:
    """In-memory stand-in for ObjectStoreClient."""

    def __init__(self):
        self.files = {}
        self.uploads = []
        self.downloads = []
        self.fail_on = None
        self._lock = threading.Lock()

    def upload(self, name, data, content_type="text/csv"):
        if name == self.fail_on:
            raise RemoteError(f"Error uploading '{name}': bucket unavailable", 503)
        body = data.encode("utf-8") if isinstance(data, str) else data
        with self._lock:
            self.files[name] = body
            self.uploads.append(name)
        return {"name": name, "size": len(body), "etag": '"etag"', "url": f"fake://bucket/{name}"}

    def download(self, name):
        self.downloads.append(name)
        if name not in self.files:
            raise NotFoundError(f"File '{name}' not found")
        return self.files[name]

    def exists(self, name):
        return name in self.files

    def list(self, prefix=""):
        return [
            {"name": n, "size": len(b), "modified_at": "", "etag": ""}
            for n, b in sorted(self.files.items()) if n.startswith(prefix)
        ]


class FakeJobRunner:
    """Scripted stand-in for JobRunnerClient; ``states`` feeds successive polls."""

    def __init__(self):
        self.submissions = []
        self.polls = []
        self.states = []

    def submit(self, params=None):
        self.submissions.append(params)
        return {
            "runtime_job_id": f"run-{len(self.submissions)}",
            "state": "queued",
            "created_at": "2025-06-14T10:00:00Z",
            "status_url": None,
        }

    def poll_status(self, handle):
        self.polls.append(handle)
        state = self.states.pop(0) if self.states else "running"
        return {
            "state": state,
            "created_at": "2025-06-14T10:00:00Z",
            "completed_at": None,
            "error_message": "solver crashed" if state == "failed" else None,
        }

    def fetch_logs(self, runtime_job_id):
        return {"logs": [f"started {runtime_job_id}"]}


RESULT_CSVS = {
    "SolutionResults.csv": (
        "NPV,FinalBalance,InitialBalance,TotalPeriods,TotalProjects,ProjectsSelected,Status\n"
        "512.40,1450.00,1000.00,3,2,1,OPTIMAL\n"
    ),
    "SelectedProjectsOutput.csv": (
        "ProjectName,StartPeriod,SetupCost,TotalReward,NPV_Contribution\n"
        "Alpha,1,300.00,500.00,154.20\n"
    ),
    "BalanceResults.csv": (
        "Period,Balance,DiscountedBalance\n"
        "1,700.00,666.67\n"
        "2,950.00,861.68\n"
        "3,1450.00,1252.56\n"
    ),
    "CashFlowResults.csv": (
        "Period,CashIn,CashOut,NetCashFlow\n"
        "1,0.00,300.00,-300.00\n"
        "2,250.00,0.00,250.00\n"
        "3,250.00,0.00,250.00\n"
    ),
}


# ---------------------------------------------------------------------------
#  Application fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def make_app():
    """Factory building an application with fake remote services on *database_uri*."""

    def _make(database_uri="sqlite://"):
        return create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": database_uri,
            "STATUS_POLLING_ENABLED": False,
            "SERVICES": {"object_store": FakeObjectStore(), "job_runner": FakeJobRunner()},
        })

    return _make


@pytest.fixture
def in_memory_app(make_app):
    """Create a throw-away Flask application backed by an in-memory SQLite DB."""
    app = make_app()

    with app.app_context():
        db.create_all()
        yield app
        # Clean up: remove the session so no state leaks between tests
        db.session.remove()


@pytest.fixture
def session(in_memory_app):
    """Return the SQLAlchemy session bound to the in-memory DB."""
    return db.session


@pytest.fixture
def services(in_memory_app):
    return in_memory_app.extensions["optimization_services"]


@pytest.fixture
def object_store(services):
    return services["object_store"]


@pytest.fixture
def job_runner(services):
    return services["job_runner"]


@pytest.fixture
def orchestrator(services):
    return services["orchestrator"]


@pytest.fixture
def result_csvs():
    return dict(RESULT_CSVS)


@pytest.fixture
def sample_data():
    """Two projects over three periods with one must-take-one group holding both."""
    return {
        "parameters": {
            "total_periods": 3,
            "discount_rate": Decimal("0.05"),
            "initial_balance": Decimal("1000"),
            "nb_must_take_one": 1,
            "description": "Two candidate projects",
        },
        "project_costs": [
            {"project_name": "Beta", "period": 2, "amount": Decimal("100")},
            {"project_name": "Alpha", "period": 1, "amount": Decimal("300")},
            {"project_name": "Beta", "period": 1, "amount": Decimal("400")},
        ],
        "project_rewards": [
            {"project_name": "Alpha", "period": 3, "amount": Decimal("250")},
            {"project_name": "Alpha", "period": 2, "amount": Decimal("250")},
            {"project_name": "Beta", "period": 3, "amount": Decimal("700")},
        ],
        "min_balances": [
            {"period": 3, "min_balance": Decimal("100")},
            {"period": 1, "min_balance": Decimal("100")},
            {"period": 2, "min_balance": Decimal("100")},
        ],
        "must_take_one": [
            {"group_id": 1, "project_name": "Beta"},
            {"group_id": 1, "project_name": "Alpha"},
        ],
    }


@pytest.fixture
def make_optimization(orchestrator, sample_data):
    """Factory creating an optimization from ``sample_data`` with optional overrides."""

    def _make(parameters=None, status="pending", **sections):
        data = {**sample_data, **sections}
        data["parameters"] = {**sample_data["parameters"], **(parameters or {})}
        return orchestrator.create(data, status=status)

    return _make
