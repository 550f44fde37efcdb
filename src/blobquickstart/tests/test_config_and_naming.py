import base64
import json

import aiohttp
import pytest
from azure.core.exceptions import HttpResponseError, ServiceRequestError

from blobquickstart import (
    ConfigInvalidError,
    ContainerAlreadyExistsError,
    Credentials,
    ErrorKind,
    InvalidContainerNameError,
    InvalidCredentialError,
    NameGenerator,
    QuickstartSettings,
    StorageClient,
    StorageError,
    TransferOptions,
    TransientTransportError,
    load_credentials,
    validate_container_name,
)
from blobquickstart.azure_blob_adapter import _translate

KEY = base64.b64encode(b"secret-key").decode("ascii")


def write_credentials(tmp_path, payload) -> str:
    path = tmp_path / "credentials.json"
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return str(path)


# ---------------------------
# Credentials file
# ---------------------------


def test_load_credentials(tmp_path):
    path = write_credentials(
        tmp_path,
        {"azure_storage_account_name": "myaccount", "azure_storage_access_key": KEY},
    )

    creds = load_credentials(path)

    assert creds == Credentials("myaccount", KEY)
    assert KEY not in repr(creds)


@pytest.mark.parametrize(
    "payload",
    [
        {"azure_storage_account_name": "", "azure_storage_access_key": KEY},
        {"azure_storage_account_name": "myaccount", "azure_storage_access_key": ""},
        {"azure_storage_account_name": "myaccount"},
        {"azure_storage_account_name": 42, "azure_storage_access_key": KEY},
        ["myaccount", KEY],
        "{not json",
    ],
)
def test_invalid_credentials_file(tmp_path, payload):
    path = write_credentials(tmp_path, payload)

    with pytest.raises(ConfigInvalidError) as excinfo:
        load_credentials(path)
    assert excinfo.value.kind is ErrorKind.CONFIG_INVALID


def test_missing_credentials_file(tmp_path):
    with pytest.raises(ConfigInvalidError):
        load_credentials(tmp_path / "absent.json")


# ---------------------------
# Storage client
# ---------------------------


def test_client_builds_urls_without_io():
    client = StorageClient(Credentials("myaccount", KEY))

    assert client.account_url == "https://myaccount.blob.core.windows.net"
    assert client.url_for("quickstart-1") == "https://myaccount.blob.core.windows.net/quickstart-1"
    assert (
        client.url_for("quickstart-1", "dir/file name")
        == "https://myaccount.blob.core.windows.net/quickstart-1/dir/file%20name"
    )


def test_client_custom_endpoint():
    client = StorageClient(Credentials("myaccount", KEY), endpoint_suffix="blob.core.chinacloudapi.cn")

    assert client.account_url == "https://myaccount.blob.core.chinacloudapi.cn"


@pytest.mark.parametrize(
    "account_name, account_key",
    [
        ("My_Account", KEY),
        ("ab", KEY),
        ("myaccount", ""),
        ("myaccount", "not base64!"),
    ],
)
def test_client_rejects_malformed_credentials_eagerly(account_name, account_key):
    with pytest.raises(InvalidCredentialError) as excinfo:
        StorageClient(Credentials(account_name, account_key))
    assert excinfo.value.kind is ErrorKind.INVALID_CREDENTIAL


def test_client_validates_container_names():
    client = StorageClient(Credentials("myaccount", KEY), adapter=object())

    with pytest.raises(InvalidContainerNameError):
        client.get_container("Not_Valid")


# ---------------------------
# Names
# ---------------------------


@pytest.mark.parametrize("name", ["abc", "quickstart-123", "a" * 63, "1-2-3"])
def test_valid_container_names(name):
    assert validate_container_name(name) == name


@pytest.mark.parametrize("name", ["ab", "a" * 64, "Abc", "a--b", "abc-", "-abc", "a_b", ""])
def test_invalid_container_names(name):
    with pytest.raises(InvalidContainerNameError):
        validate_container_name(name)


def test_name_generator_is_seedable():
    first, second = NameGenerator(seed=1234), NameGenerator(seed=1234)

    assert first.container_name() == second.container_name()
    assert first.file_name() == second.file_name()


def test_name_generator_produces_distinct_valid_names():
    names = NameGenerator()
    containers = {names.container_name() for _ in range(50)}

    assert len(containers) == 50
    assert all(name.startswith("quickstart-") for name in containers)
    assert names.file_name().isdigit()


# ---------------------------
# Options and settings
# ---------------------------


@pytest.mark.parametrize(
    "kwargs",
    [{"block_size": 0}, {"parallelism": 0}, {"max_block_retries": -1}, {"single_put_threshold": -1}],
)
def test_transfer_options_validation(kwargs):
    with pytest.raises(ValueError):
        TransferOptions(**kwargs)


def test_transfer_option_defaults():
    options = TransferOptions()

    assert options.block_size == 4 * 1024 * 1024
    assert options.parallelism == 16
    assert options.single_put_threshold == 256 * 1024 * 1024
    assert options.max_retry_requests == 20


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("QUICKSTART_CREDENTIALS_FILE", str(tmp_path / "creds.json"))
    monkeypatch.setenv("QUICKSTART_LOCAL_STORE", str(tmp_path / "store"))
    monkeypatch.setenv("QUICKSTART_LOG_LEVEL", "debug")
    monkeypatch.delenv("QUICKSTART_ENDPOINT_SUFFIX", raising=False)

    settings = QuickstartSettings.from_env(dotenv=False)

    assert settings.credentials_file == tmp_path / "creds.json"
    assert settings.local_store == tmp_path / "store"
    assert settings.log_level == "DEBUG"
    assert settings.endpoint_suffix == "blob.core.windows.net"


# ---------------------------
# Azure error translation
# ---------------------------


def _http_error(status, code):
    error = HttpResponseError(message=f"{status} {code}")
    error.status_code = status
    error.error_code = code
    return error


def test_translate_uses_service_error_code():
    error = _translate(_http_error(409, "ContainerAlreadyExists"), "container 'x'")

    assert isinstance(error, ContainerAlreadyExistsError)
    assert error.kind is ErrorKind.ALREADY_EXISTS


@pytest.mark.parametrize(
    "exc",
    [
        ServiceRequestError("connection refused"),
        aiohttp.ClientConnectionError("reset"),
        _http_error(503, "ServerBusy"),
    ],
)
def test_translate_transient_errors(exc):
    assert isinstance(_translate(exc, "blob 'x'"), TransientTransportError)


def test_translate_other_errors_are_service_errors():
    error = _translate(_http_error(400, "InvalidHeaderValue"), "blob 'x'")

    assert type(error) is StorageError
    assert error.kind is ErrorKind.SERVICE
