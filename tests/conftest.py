import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spendlog.api import deps
from spendlog.core.database import Base
from spendlog.core.security import create_access_token
from spendlog.main import app
from spendlog.models import User
from spendlog.services.storage import LocalBlobStorage
import spendlog.models  # noqa: F401

class FakeAIClient:
    """Stands in for the hosted model; replies are queued per test"""

    def __init__(self, replies=None, configured=True):
        self.replies = list(replies or [])
        self.calls = []
        self.configured = configured

    @property
    def is_configured(self):
        return self.configured

    async def chat(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def chat_json(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session

@pytest_asyncio.fixture
async def user(db):
    user = User(id=1, email="asha@example.com", full_name="Asha")
    db.add(user)
    await db.commit()
    return user

@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(root=str(tmp_path / "blobs"), secret_key="test-secret")

@pytest.fixture
def ai_client():
    return FakeAIClient(configured=False)

@pytest_asyncio.fixture
async def client(session_factory, storage, ai_client):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_ai_client] = lambda: ai_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()

@pytest.fixture
def auth_headers():
    token = create_access_token(42, email="ravi@example.com")
    return {"Authorization": f"Bearer {token}"}

def build_pdf(lines):
    """Single-page PDF with one text line per entry"""
    text_ops = ["BT", "/F1 10 Tf", "14 TL", "40 800 Td"]
    for line in lines:
        escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        text_ops.append(f"({escaped}) Tj T*")
    text_ops.append("ET")
    stream = "\n".join(text_ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 595 842] "
        b"/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode()
    return bytes(out)

def encrypt_pdf(data, password):
    from io import BytesIO
    from pypdf import PdfReader, PdfWriter

    writer = PdfWriter()
    for page in PdfReader(BytesIO(data)).pages:
        writer.add_page(page)
    writer.encrypt(password, algorithm="RC4-128")
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()

STATEMENT_LINES = [
    "HDFC BANK LTD",
    "Statement Period: 01/03/2024 to 31/03/2024",
    "Date Narration Withdrawal Deposit Balance",
    "05/03/2024 UPI-SWIGGY-BANGALORE 450.00 25,430.50",
    "07/03/2024 SALARY CREDIT ACME CORP 50,000.00 75,430.50",
    "09/03/2024 AMAZON PAY INDIA 1,299.00 74,131.50",
]

@pytest.fixture
def statement_pdf():
    return build_pdf(STATEMENT_LINES)

@pytest.fixture
def locked_statement_pdf():
    return encrypt_pdf(build_pdf(STATEMENT_LINES), "secret")
