from __future__ import annotations

import anyio
import pytest
from sqlalchemy.exc import SAWarning

from transfer_backend.errors import (
    INVALID_CREDENTIAL_MESSAGE,
    InvalidCredentialError,
    LocalIndexError,
    NetworkError,
    NotConfiguredError,
    ShareExpiredError,
    ShareNotFoundError,
)
from transfer_backend.local_index import LocalShareIndex
from transfer_backend.services import shares_service
from transfer_backend.services.shares_service import ShareService

_HOUR = 60 * 60 * 1000


def _fix_share_id(monkeypatch: pytest.MonkeyPatch, share_id: str = "fixedshareid") -> str:
    monkeypatch.setattr(shares_service, "generate_share_id", lambda: share_id)
    return share_id


@pytest.mark.anyio
async def test_create_then_fetch_with_right_and_wrong_passcode(service: ShareService, store, index, clock):
    created = await service.create_share(
        data=b"hello world",
        file_name="notes.txt",
        file_type="text/plain",
        expires_in_ms=_HOUR,
        pass_code="ab12cd",
    )
    sid = created.share_id

    assert set(store.objects) == {f"/{sid}_metadata.json.enc", f"/{sid}_file.dat"}
    assert store.objects[f"/{sid}_file.dat"] == b"hello world"
    meta_blob = store.objects[f"/{sid}_metadata.json.enc"]
    assert b"notes.txt" not in meta_blob
    assert b"ab12cd" not in meta_blob
    assert [c for c in store.calls if c[0] == "put"] == [
        ("put", f"/{sid}_metadata.json.enc"),
        ("put", f"/{sid}_file.dat"),
    ]

    assert created.pass_code == "ab12cd"
    assert created.share_url == f"https://transfer.example.com/share/{sid}?code=ab12cd"
    assert created.metadata.created_at == clock.now
    assert created.metadata.expires_at == clock.now + _HOUR
    assert created.metadata.file_size == 11

    fetched = await service.get_share(share_id=sid, pass_code="ab12cd")
    assert fetched.file_name == "notes.txt"
    assert fetched.file_type == "text/plain"
    assert fetched.pass_code == "ab12cd"

    with pytest.raises(InvalidCredentialError) as exc:
        _ = await service.get_share(share_id=sid, pass_code="wrong1")
    assert str(exc.value) == INVALID_CREDENTIAL_MESSAGE

    indexed = await index.get(sid)
    assert indexed is not None
    assert indexed.pass_code == "ab12cd"


@pytest.mark.anyio
async def test_generated_passcode_and_share_url(service: ShareService):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)
    assert len(created.pass_code) == 6
    assert created.share_url == (
        f"https://transfer.example.com/share/{created.share_id}?code={created.pass_code}"
    )
    assert created.metadata.file_type == "application/octet-stream"


@pytest.mark.anyio
async def test_unknown_share_is_not_found(service: ShareService):
    with pytest.raises(ShareNotFoundError):
        _ = await service.get_share(share_id="doesnotexist", pass_code="ab12cd")


@pytest.mark.anyio
async def test_invalid_share_id_never_reaches_store(service: ShareService, store):
    with pytest.raises(ShareNotFoundError):
        _ = await service.get_share(share_id="../etc/passwd", pass_code="ab12cd")
    with pytest.raises(ShareNotFoundError):
        await service.delete_share("a/b")
    assert store.calls == []


@pytest.mark.anyio
async def test_empty_passcode_is_invalid_credential(service: ShareService):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)
    with pytest.raises(InvalidCredentialError):
        _ = await service.get_share(share_id=created.share_id, pass_code="")


@pytest.mark.anyio
async def test_metadata_under_another_id_is_rejected(service: ShareService, store):
    a = await service.create_share(data=b"a", file_name="a.bin", expires_in_ms=_HOUR, pass_code="ab12cd")
    b = await service.create_share(data=b"b", file_name="b.bin", expires_in_ms=_HOUR, pass_code="ab12cd")
    store.objects[f"/{b.share_id}_metadata.json.enc"] = store.objects[f"/{a.share_id}_metadata.json.enc"]

    with pytest.raises(InvalidCredentialError):
        _ = await service.get_share(share_id=b.share_id, pass_code="ab12cd")


@pytest.mark.anyio
async def test_expired_share_is_removed_on_access(service: ShareService, store, index, clock):
    created = await service.create_share(
        data=b"x", file_name="x.bin", expires_in_ms=1_000, pass_code="ab12cd"
    )
    sid = created.share_id

    clock.advance(1_000)
    # Still live at exactly expiresAt.
    _ = await service.get_share(share_id=sid, pass_code="ab12cd")

    clock.advance(1)
    with pytest.raises(ShareExpiredError):
        _ = await service.get_share(share_id=sid, pass_code="ab12cd")

    assert store.objects == {}
    assert await index.get(sid) is None

    with pytest.raises(ShareNotFoundError):
        _ = await service.get_share(share_id=sid, pass_code="ab12cd")


@pytest.mark.anyio
async def test_expired_share_reports_expired_even_if_cleanup_fails(service: ShareService, store, clock):
    created = await service.create_share(
        data=b"x", file_name="x.bin", expires_in_ms=1_000, pass_code="ab12cd"
    )
    store.fail_delete[f"/{created.share_id}_metadata.json.enc"] = NetworkError("down")

    clock.advance(5_000)
    with pytest.raises(ShareExpiredError):
        _ = await service.get_share(share_id=created.share_id, pass_code="ab12cd")


@pytest.mark.anyio
async def test_delete_is_idempotent(service: ShareService, store, index):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)

    await service.delete_share(created.share_id)
    await service.delete_share(created.share_id)

    assert store.objects == {}
    assert await index.get(created.share_id) is None
    with pytest.raises(ShareNotFoundError):
        _ = await service.get_share(share_id=created.share_id, pass_code=created.pass_code)


@pytest.mark.anyio
async def test_delete_logs_remote_failures_and_still_removes_index_row(service: ShareService, store, index):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)
    store.fail_delete[f"/{created.share_id}_file.dat"] = NetworkError("down")

    await service.delete_share(created.share_id)

    assert f"/{created.share_id}_metadata.json.enc" not in store.objects
    assert await index.get(created.share_id) is None


@pytest.mark.anyio
async def test_cleanup_removes_only_expired(service: ShareService, store, clock):
    for i in range(3):
        _ = await service.create_share(data=b"old", file_name=f"old{i}", expires_in_ms=1_000)
    keep = [
        await service.create_share(data=b"new", file_name=f"new{i}", expires_in_ms=10 * 24 * _HOUR)
        for i in range(2)
    ]

    clock.advance(2_000)
    assert await service.cleanup_expired_shares() == 3

    remaining = await service.list_local_shares()
    assert {m.share_id for m in remaining} == {c.share_id for c in keep}
    assert len(store.objects) == 4
    for kept in keep:
        fetched = await service.get_share(share_id=kept.share_id, pass_code=kept.pass_code)
        assert fetched.file_name == kept.metadata.file_name
    assert await service.cleanup_expired_shares() == 0


@pytest.mark.anyio
async def test_cleanup_continues_past_a_failing_entry(
    service: ShareService, index: LocalShareIndex, clock, monkeypatch: pytest.MonkeyPatch
):
    created = [
        await service.create_share(data=b"x", file_name=f"f{i}", expires_in_ms=1_000)
        for i in range(3)
    ]
    bad = created[1].share_id
    original_delete = index.delete

    async def flaky_delete(share_id: str) -> bool:
        if share_id == bad:
            raise LocalIndexError("disk full")
        return await original_delete(share_id)

    monkeypatch.setattr(index, "delete", flaky_delete)

    clock.advance(2_000)
    assert await service.cleanup_expired_shares() == 2
    assert [m.share_id for m in await service.list_local_shares()] == [bad]


@pytest.mark.anyio
async def test_payload_upload_failure_rolls_back_metadata(
    service: ShareService, store, index, monkeypatch: pytest.MonkeyPatch
):
    sid = _fix_share_id(monkeypatch)
    store.fail_put[f"/{sid}_file.dat"] = NetworkError("Upload failed: 507 Insufficient Storage")

    with pytest.raises(NetworkError):
        _ = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)

    assert store.objects == {}
    assert ("delete", f"/{sid}_metadata.json.enc") in store.calls
    assert await index.get(sid) is None


@pytest.mark.anyio
async def test_metadata_upload_failure_skips_payload(service: ShareService, store, monkeypatch: pytest.MonkeyPatch):
    sid = _fix_share_id(monkeypatch)
    store.fail_put[f"/{sid}_metadata.json.enc"] = NetworkError("down")

    with pytest.raises(NetworkError):
        _ = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)

    assert ("put", f"/{sid}_file.dat") not in store.calls
    assert store.objects == {}


@pytest.mark.anyio
async def test_cancelled_create_leaves_nothing_behind(service: ShareService, store, index, monkeypatch: pytest.MonkeyPatch):
    sid = _fix_share_id(monkeypatch)
    store.block_put.add(f"/{sid}_file.dat")

    async def _create() -> None:
        _ = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_create)
        await store.put_started.wait()
        tg.cancel_scope.cancel()

    assert store.objects == {}
    assert ("delete", f"/{sid}_metadata.json.enc") in store.calls
    assert ("delete", f"/{sid}_file.dat") in store.calls
    assert await index.get(sid) is None


@pytest.mark.anyio
async def test_store_errors_propagate_from_fetch(service: ShareService, store):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)
    store.fail_get[f"/{created.share_id}_metadata.json.enc"] = NetworkError("down")

    with pytest.raises(NetworkError):
        _ = await service.get_share(share_id=created.share_id, pass_code=created.pass_code)


@pytest.mark.anyio
async def test_download_returns_payload_and_progress(service: ShareService):
    created = await service.create_share(
        data=b"\x00\x01binary", file_name="b.bin", expires_in_ms=_HOUR, pass_code="ab12cd"
    )
    progress: list[float] = []

    got = await service.download_share(
        share_id=created.share_id, pass_code="ab12cd", on_progress=progress.append
    )
    assert got.data == b"\x00\x01binary"
    assert got.metadata.file_name == "b.bin"
    assert progress[-1] == 1.0


@pytest.mark.anyio
async def test_download_with_missing_payload_is_not_found(service: ShareService, store):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)
    del store.objects[f"/{created.share_id}_file.dat"]

    with pytest.raises(ShareNotFoundError):
        _ = await service.download_share(share_id=created.share_id, pass_code=created.pass_code)


@pytest.mark.anyio
async def test_create_rejects_non_positive_ttl(service: ShareService, store):
    with pytest.raises(ValueError):
        _ = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=0)
    assert store.calls == []


@pytest.mark.anyio
async def test_unconfigured_store_fails_every_remote_operation(index: LocalShareIndex, clock):
    svc = ShareService(store=None, index=index, public_base_url="https://t.example", clock=clock)
    assert svc.store_configured is False

    with pytest.raises(NotConfiguredError):
        _ = await svc.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)
    with pytest.raises(NotConfiguredError):
        _ = await svc.get_share(share_id="abc", pass_code="ab12cd")
    with pytest.raises(NotConfiguredError):
        await svc.delete_share("abc")
    with pytest.raises(NotConfiguredError):
        _ = await svc.cleanup_expired_shares()

    assert await svc.list_local_shares() == []


@pytest.mark.anyio
async def test_delete_racing_cleanup_is_quiet(service: ShareService, store, index, clock, recwarn):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=1_000)
    clock.advance(2_000)
    removed: list[int] = []

    async def _sweep() -> None:
        removed.append(await service.cleanup_expired_shares())

    async with anyio.create_task_group() as tg:
        tg.start_soon(service.delete_share, created.share_id)
        tg.start_soon(service.delete_share, created.share_id)
        tg.start_soon(_sweep)

    assert removed == [0] or removed == [1]
    assert store.objects == {}
    assert await index.get(created.share_id) is None
    assert [w for w in recwarn if issubclass(w.category, SAWarning)] == []


@pytest.mark.anyio
async def test_get_local_share_and_remote_presence(service: ShareService, store):
    created = await service.create_share(data=b"x", file_name="x.bin", expires_in_ms=_HOUR)

    local = await service.get_local_share(created.share_id)
    assert local.pass_code == created.pass_code
    assert await service.remote_objects_present(created.share_id) is True

    del store.objects[f"/{created.share_id}_file.dat"]
    assert await service.remote_objects_present(created.share_id) is False

    await service.delete_share(created.share_id)
    with pytest.raises(ShareNotFoundError):
        _ = await service.get_local_share(created.share_id)
    with pytest.raises(ShareNotFoundError):
        _ = await service.get_local_share("../x")
