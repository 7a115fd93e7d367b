"""
Tests for the create / load / save / delete / unlock operations.
"""
import orjson
import pytest

from configurate import operations
from configurate.conf import ConfigurateSettings
from configurate.exceptions import (
    DotPathError,
    InvalidPayloadError,
    SecretNotFoundError,
    SecretStoreError,
    StorageCodecError,
    StorageIOError,
)
from configurate.keyring_store import MemorySecretStore
from configurate.models import (
    ConfigPayload,
    SecretDescriptor,
    StorageFormat,
    UnlockPayload,
)


class FlakyStore(MemorySecretStore):
    """Memory store whose delete fails for selected ids."""

    def __init__(self, failing):
        super().__init__()
        self.failing = set(failing)
        self.attempted = []

    def delete(self, options, secret_id):
        self.attempted.append(secret_id)
        if secret_id in self.failing:
            raise SecretStoreError(f"cannot delete {secret_id}")
        super().delete(options, secret_id)


@pytest.fixture
def descriptors():
    return [SecretDescriptor(id="apiKey", dotpath="service.key", value="abc123")]


@pytest.fixture
def make_payload(tmp_path):
    """Build ConfigPayloads rooted in a temporary base directory."""
    def _make(**kwargs):
        values = {"name": "app.json", "base_dir": tmp_path, "format": StorageFormat.JSON}
        values.update(kwargs)
        return ConfigPayload(**values)
    return _make


def _locked(descriptors):
    return [SecretDescriptor(id=d.id, dotpath=d.dotpath) for d in descriptors]


class TestEndToEnd:
    """The documented create → load → unlock scenario."""

    def test_secret_split(self, tmp_path, make_payload, descriptors, secret_options, store, settings):
        result = operations.create(
            make_payload(data={}, secret_descriptors=descriptors, secret_options=secret_options),
            store=store, settings=settings,
        )
        assert result == {"service": {"key": None}}

        on_disk = orjson.loads((tmp_path / "app.json").read_bytes())
        assert on_disk == {"service": {"key": None}}
        assert b"abc123" not in (tmp_path / "app.json").read_bytes()
        assert store.entries() == {("app", "default/apiKey"): "abc123"}

        locked = operations.load(
            make_payload(secret_descriptors=_locked(descriptors), secret_options=secret_options),
            store=store, settings=settings,
        )
        assert locked == {"service": {"key": None}}

        unlocked = operations.unlock(
            UnlockPayload(data=locked, secret_descriptors=descriptors, secret_options=secret_options),
            store=store,
        )
        assert unlocked == {"service": {"key": "abc123"}}
        assert locked == {"service": {"key": None}}

        loaded = operations.load(
            make_payload(
                secret_descriptors=_locked(descriptors),
                secret_options=secret_options,
                with_unlock=True,
            ),
            store=store, settings=settings,
        )
        assert loaded == unlocked


class TestCreate:
    """Tests for create and save."""

    def test_default_data_is_empty_mapping(self, tmp_path, make_payload, store, settings):
        assert operations.create(make_payload(), store=store, settings=settings) == {}
        assert orjson.loads((tmp_path / "app.json").read_bytes()) == {}

    def test_with_unlock_returns_snapshot(self, make_payload, descriptors, secret_options, store, settings):
        data = {"name": "MyApp", "service": {"key": "abc123"}}
        result = operations.create(
            make_payload(
                data=data,
                secret_descriptors=descriptors,
                secret_options=secret_options,
                with_unlock=True,
            ),
            store=store, settings=settings,
        )
        assert result == {"name": "MyApp", "service": {"key": "abc123"}}
        assert data == {"name": "MyApp", "service": {"key": "abc123"}}

    def test_caller_data_not_mutated(self, make_payload, descriptors, secret_options, store, settings):
        data = {"service": {"key": "abc123"}}
        operations.create(
            make_payload(data=data, secret_descriptors=descriptors, secret_options=secret_options),
            store=store, settings=settings,
        )
        assert data == {"service": {"key": "abc123"}}

    def test_save_overwrites_secret(self, make_payload, descriptors, secret_options, store, settings):
        operations.create(
            make_payload(secret_descriptors=descriptors, secret_options=secret_options),
            store=store, settings=settings,
        )
        updated = [SecretDescriptor(id="apiKey", dotpath="service.key", value="xyz789")]
        operations.save(
            make_payload(data={"v": 2}, secret_descriptors=updated, secret_options=secret_options),
            store=store, settings=settings,
        )
        assert store.get(secret_options, "apiKey") == "xyz789"
        loaded = operations.load(make_payload(), store=store, settings=settings)
        assert loaded == {"v": 2, "service": {"key": None}}

    @pytest.mark.parametrize("fmt, passphrase, extension", [
        (StorageFormat.YAML, None, "yaml"),
        (StorageFormat.BINARY, None, "bin"),
        (StorageFormat.BINARY, "passphrase", "binc"),
    ])
    def test_other_formats(self, tmp_path, make_payload, descriptors, secret_options, store, settings,
                           fmt, passphrase, extension):
        name = f"app.{extension}"
        operations.create(
            make_payload(
                name=name,
                format=fmt,
                encryption_passphrase=passphrase,
                data={"port": 3000},
                secret_descriptors=descriptors,
                secret_options=secret_options,
            ),
            store=store, settings=settings,
        )
        assert b"abc123" not in (tmp_path / name).read_bytes()
        loaded = operations.load(
            make_payload(
                name=name,
                format=fmt,
                encryption_passphrase=passphrase,
                secret_descriptors=_locked(descriptors),
                secret_options=secret_options,
                with_unlock=True,
            ),
            store=store, settings=settings,
        )
        assert loaded == {"port": 3000, "service": {"key": "abc123"}}

    def test_wrong_passphrase(self, make_payload, store, settings):
        operations.create(
            make_payload(name="app.binc", format="binary", encryption_passphrase="right", data={"a": 1}),
            store=store, settings=settings,
        )
        with pytest.raises(StorageCodecError):
            operations.load(
                make_payload(name="app.binc", format="binary", encryption_passphrase="wrong"),
                store=store, settings=settings,
            )

    def test_sub_path_and_identifier(self, tmp_path, make_payload, store):
        settings = ConfigurateSettings(app_identifier="com.example.app")
        operations.create(make_payload(sub_path="cfg/v2", data={"a": 1}), store=store, settings=settings)
        assert (tmp_path / "com.example.app" / "cfg" / "v2" / "app.json").exists()
        operations.create(
            make_payload(dir_name_override="my-app", data={"a": 1}),
            store=store, settings=settings,
        )
        assert (tmp_path / "my-app" / "app.json").exists()


class TestValidation:
    """Tests that invalid requests fail before any side effect."""

    @pytest.mark.parametrize("op", ["create", "save", "load", "delete"])
    def test_descriptors_without_options(self, tmp_path, make_payload, descriptors, store, settings, op):
        with pytest.raises(InvalidPayloadError) as exc:
            getattr(operations, op)(
                make_payload(secret_descriptors=descriptors), store=store, settings=settings,
            )
        assert f"'{op}'" in str(exc.value)
        assert not (tmp_path / "app.json").exists()
        assert store.entries() == {}

    @pytest.mark.parametrize("op", ["create", "save", "load", "delete"])
    def test_options_without_descriptors(self, tmp_path, make_payload, secret_options, store, settings, op):
        with pytest.raises(InvalidPayloadError):
            getattr(operations, op)(
                make_payload(secret_options=secret_options), store=store, settings=settings,
            )
        assert not (tmp_path / "app.json").exists()

    def test_unlock_pairing(self, descriptors, secret_options, store):
        with pytest.raises(InvalidPayloadError):
            operations.unlock(UnlockPayload(data={}, secret_descriptors=descriptors), store=store)
        with pytest.raises(InvalidPayloadError):
            operations.unlock(UnlockPayload(data={}, secret_options=secret_options), store=store)

    def test_both_absent_is_noop(self, store):
        assert operations.unlock(UnlockPayload(data={"a": None}), store=store) == {"a": None}

    def test_passphrase_requires_binary(self, tmp_path, make_payload, store, settings):
        with pytest.raises(InvalidPayloadError):
            operations.create(
                make_payload(encryption_passphrase="secret"), store=store, settings=settings,
            )
        assert not (tmp_path / "app.json").exists()

    def test_invalid_name(self, tmp_path, make_payload, store, settings):
        with pytest.raises(InvalidPayloadError):
            operations.create(make_payload(name="../app.json"), store=store, settings=settings)

    def test_bad_dotpath_stores_nothing(self, tmp_path, make_payload, secret_options, store, settings):
        descriptors = [
            SecretDescriptor(id="ok", dotpath="good.key", value="1"),
            SecretDescriptor(id="bad", dotpath="service.key", value="2"),
        ]
        with pytest.raises(DotPathError):
            operations.create(
                make_payload(
                    data={"service": "scalar"},
                    secret_descriptors=descriptors,
                    secret_options=secret_options,
                ),
                store=store, settings=settings,
            )
        assert store.entries() == {}
        assert not (tmp_path / "app.json").exists()

    def test_empty_segment_dotpath(self, make_payload, secret_options, store, settings):
        with pytest.raises(DotPathError):
            operations.create(
                make_payload(
                    secret_descriptors=[SecretDescriptor(id="x", dotpath="a..b", value="v")],
                    secret_options=secret_options,
                ),
                store=store, settings=settings,
            )
        assert store.entries() == {}

    def test_from_request_camel_case(self, tmp_path):
        payload = ConfigPayload.from_request({
            "name": "app.json",
            "baseDir": str(tmp_path),
            "format": "yaml",
            "subPath": "cfg",
            "secretDescriptors": [{"id": "apiKey", "dotpath": "service.key", "value": "abc123"}],
            "secretOptions": {"service": "app", "account": "default"},
            "withUnlock": True,
        })
        assert payload.format is StorageFormat.YAML
        assert payload.sub_path == "cfg"
        assert payload.secret_descriptors[0].id == "apiKey"
        assert "abc123" not in repr(payload)

    @pytest.mark.parametrize("raw", [
        {"name": "app.json", "format": "json"},
        {"name": "app.json", "baseDir": "/tmp", "format": "toml"},
        {"name": "app.json", "baseDir": "/tmp", "format": "json", "unknown": 1},
        {"name": "app.json", "baseDir": "/tmp", "format": "json", "data": {"when": object()}},
        {"name": "app.json", "baseDir": "/tmp", "format": "json", "data": {"ratio": float("nan")}},
    ])
    def test_from_request_rejects(self, raw):
        with pytest.raises(InvalidPayloadError) as exc:
            ConfigPayload.from_request(raw)
        assert exc.value.to_dict()["kind"] == "invalid_payload"


class TestLoadAndUnlock:
    """Tests for secret reinflation."""

    def test_missing_file(self, make_payload, store, settings):
        with pytest.raises(StorageIOError):
            operations.load(make_payload(), store=store, settings=settings)

    def test_missing_secret_is_error(self, make_payload, descriptors, secret_options, store, settings):
        operations.create(make_payload(data={"service": {"key": None}}), store=store, settings=settings)
        with pytest.raises(SecretNotFoundError):
            operations.load(
                make_payload(
                    secret_descriptors=_locked(descriptors),
                    secret_options=secret_options,
                    with_unlock=True,
                ),
                store=store, settings=settings,
            )

    def test_without_unlock_ignores_store(self, make_payload, descriptors, secret_options, settings):
        operations.create(make_payload(data={"service": {"key": None}}), store=MemorySecretStore(),
                          settings=settings)
        # the empty store would raise if it were consulted
        loaded = operations.load(
            make_payload(secret_descriptors=_locked(descriptors), secret_options=secret_options),
            store=MemorySecretStore(), settings=settings,
        )
        assert loaded == {"service": {"key": None}}

    def test_structured_secret_parsed(self, secret_options, store):
        store.set(secret_options, "creds", '{"user": "admin", "pin": 1234}')
        store.set(secret_options, "token", "plain-token")
        result = operations.unlock(
            UnlockPayload(
                data={"db": {"creds": None}, "token": None},
                secret_descriptors=[
                    SecretDescriptor(id="creds", dotpath="db.creds"),
                    SecretDescriptor(id="token", dotpath="token"),
                ],
                secret_options=secret_options,
            ),
            store=store,
        )
        assert result == {"db": {"creds": {"user": "admin", "pin": 1234}}, "token": "plain-token"}

    def test_parse_secret(self):
        assert operations.parse_secret("abc123") == "abc123"
        assert operations.parse_secret("[1, 2]") == [1, 2]
        assert operations.parse_secret("true") is True

    def test_unlock_does_not_touch_filesystem(self, tmp_path, descriptors, secret_options, store):
        store.set(secret_options, "apiKey", "abc123")
        result = operations.unlock(
            UnlockPayload(data={}, secret_descriptors=descriptors, secret_options=secret_options),
            store=store,
        )
        assert result == {"service": {"key": "abc123"}}
        assert list(tmp_path.iterdir()) == []


class TestDelete:
    """Tests for delete."""

    def test_missing_file_is_success(self, make_payload, store, settings):
        assert operations.delete(make_payload(), store=store, settings=settings) is None

    def test_removes_file_and_secrets(self, tmp_path, make_payload, descriptors, secret_options, store, settings):
        operations.create(
            make_payload(secret_descriptors=descriptors, secret_options=secret_options),
            store=store, settings=settings,
        )
        operations.delete(
            make_payload(secret_descriptors=_locked(descriptors), secret_options=secret_options),
            store=store, settings=settings,
        )
        assert not (tmp_path / "app.json").exists()
        assert store.entries() == {}

    def test_attempts_every_descriptor(self, tmp_path, make_payload, secret_options, settings):
        store = FlakyStore(failing={"first"})
        for secret_id in ("first", "second", "third"):
            store.set(secret_options, secret_id, "v")
        operations.create(make_payload(data={}), store=store, settings=settings)
        operations.delete(
            make_payload(
                secret_descriptors=[
                    SecretDescriptor(id="first", dotpath="a"),
                    SecretDescriptor(id="missing", dotpath="b"),
                    SecretDescriptor(id="second", dotpath="c"),
                    SecretDescriptor(id="third", dotpath="d"),
                ],
                secret_options=secret_options,
            ),
            store=store, settings=settings,
        )
        assert store.attempted == ["first", "missing", "second", "third"]
        assert store.entries() == {("app", "default/first"): "v"}
        assert not (tmp_path / "app.json").exists()

    def test_directory_in_place_of_file(self, tmp_path, make_payload, store, settings):
        (tmp_path / "app.json").mkdir()
        with pytest.raises(StorageIOError):
            operations.delete(make_payload(), store=store, settings=settings)


def test_attempt_all_swallows_errors():
    seen = []

    def action(item):
        seen.append(item)
        if item % 2:
            raise RuntimeError(f"odd {item}")

    assert operations.attempt_all(range(5), action) is None
    assert seen == [0, 1, 2, 3, 4]
