import pytest

import sources
from tabular import parse_csv_text

BOOKINGS_CSV = (
    "LR No,Date,From Customer,To Customer,To Place,Quantity,Amount,Payment Method\r\n"
    "LR100,2024-01-05,Sharma Textiles,Acme Traders,Pune,5,1200,paid\r\n"
    "LR101,2024-01-06,Gupta & Sons,Beta Co,Mumbai,5.0,800,1\r\n"
    "LR102,2024-02-10,Sharma Textiles,Delta Ltd,Nagpur,12,2500,a/c\r\n"
)

RECEIVED_CSV = (
    "LR No,Date,To Customer,From Place,To Place,Quantity,Amount,Payment Method\n"
    "RC200,2024-01-07,Beta Co,Surat,Mumbai,3,450,to pay\n"
    "RC201,2024-02-11,Omega Stores,Delhi,Pune,12,2500,3\n"
)


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    (tmp_path / "bookings.csv").write_text(BOOKINGS_CSV, encoding="utf-8")
    (tmp_path / "received.csv").write_text(RECEIVED_CSV, encoding="utf-8")
    monkeypatch.setattr(sources, "DATA_SOURCE", str(tmp_path))
    return tmp_path


class CountingLoader:
    """Loader stand-in serving fixed CSV text per dataset and counting calls."""

    def __init__(self, texts, failures=None):
        self.texts = texts
        self.failures = failures or {}
        self.calls = []

    def __call__(self, schema):
        self.calls.append(schema.key)
        if schema.key in self.failures:
            raise self.failures[schema.key]
        return parse_csv_text(self.texts.get(schema.key, ""))


@pytest.fixture
def loader():
    return CountingLoader({"bookings": BOOKINGS_CSV, "received": RECEIVED_CSV})


@pytest.fixture
def client(data_dir):
    import app as app_module
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c
