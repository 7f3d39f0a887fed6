"""Session helper, exception codes and enum helpers."""
import re
import uuid

import pytest
from sqlalchemy import func, select

from logistics_engine import database
from logistics_engine.core.enum_utils import enum_comment, get_enum_value, status_in
from logistics_engine.core.exceptions import LifecycleError
from logistics_engine.database import get_db_session
from logistics_engine.models.document import Document, DocumentType
from logistics_engine.models.gate_pass import GatePass, GatePassStatus


def all_error_types(base=LifecycleError):
    for sub in base.__subclasses__():
        yield sub
        yield from all_error_types(sub)


async def count_documents(session_factory, tenant_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(Document.id)).where(Document.tenant_id == tenant_id)
        )
        return result.scalar()


def new_document(tenant_id):
    return Document(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        type=DocumentType.POD.value,
        file_name="pod.pdf",
        mime_type="application/pdf",
    )


class TestGetDbSession:

    @pytest.fixture(autouse=True)
    def use_test_database(self, monkeypatch, session_factory):
        monkeypatch.setattr(database, "async_session_factory", session_factory)

    async def test_commits_on_success(self, session_factory, tenant_id):
        async with get_db_session() as session:
            session.add(new_document(tenant_id))

        assert await count_documents(session_factory, tenant_id) == 1

    async def test_rolls_back_on_error(self, session_factory, tenant_id):
        with pytest.raises(RuntimeError):
            async with get_db_session() as session:
                session.add(new_document(tenant_id))
                await session.flush()
                raise RuntimeError("storage offline")

        assert await count_documents(session_factory, tenant_id) == 0


@pytest.mark.parametrize("error_type", [LifecycleError, *all_error_types()])
def test_error_code_is_upper_snake_of_class_name(error_type):
    expected = re.sub(r"(?<!^)(?=[A-Z])", "_", error_type.__name__).upper()
    assert error_type.code == expected


def test_error_carries_message_and_details():
    error = LifecycleError("nope")
    assert error.message == "nope"
    assert error.details == {}


class TestEnumHelpers:

    def test_get_enum_value(self):
        assert get_enum_value(GatePassStatus.GATE_IN) == "GATE_IN"
        assert get_enum_value("GATE_IN") == "GATE_IN"
        assert get_enum_value(None) is None

    def test_status_in(self):
        assert status_in("GATE_IN", GatePassStatus.CHECK_IN, GatePassStatus.GATE_IN)
        assert not status_in("GATE_OUT", GatePassStatus.CHECK_IN, GatePassStatus.GATE_IN)
        assert not status_in(None, GatePassStatus.CHECK_IN)

    def test_status_columns_list_their_values(self):
        assert enum_comment(GatePassStatus) == "CHECK_IN, GATE_IN, GATE_OUT, CANCELLED"
        assert GatePass.__table__.c.status.comment == enum_comment(GatePassStatus)
