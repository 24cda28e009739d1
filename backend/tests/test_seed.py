import pytest
from sqlalchemy import func, select

from thankumail import main
from thankumail.models.models import Gift


@pytest.mark.anyio
async def test_seed_inserts_demo_gift_once(session_factory, monkeypatch):
    monkeypatch.setattr(main, "async_session_factory", session_factory)

    await main.seed_demo_gift()
    await main.seed_demo_gift()

    async with session_factory() as session:
        total = await session.scalar(select(func.count()).select_from(Gift))
        demo = await session.scalar(select(Gift).where(Gift.public_id == main.DEMO_GIFT_ID))

    assert total == 1
    assert demo.is_claimed is False
    assert demo.amount >= 1
