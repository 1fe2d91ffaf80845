import pytest

from usageflow.clients import PipelineClients
from usageflow.config import Settings
from usageflow.io_landing import RAW_DATA_DIR
from usageflow.io_notify import InMemoryNotifier
from usageflow.io_stores import InMemoryObjectStore, InMemorySummaryTable
from usageflow.models import Reading

HEADER = (
    "customerId,customerName,locationId,address,city,state,postalCode,timestamp,"
    "kWh,outsideTemp,electricVehicleCharging,hotWaterHeater,poolPump,heatPump"
)

SAMPLE_CSV = RAW_DATA_DIR / "sample_usage.csv"


def csv_row(timestamp, kwh, temp=20, ev="false", hot_water="false", pool="false", heat="false",
            customer="CUST-001", location="LOC-001"):
    return (
        f"{customer},Jane Doe,{location},12 Main St,Springfield,IL,62701,"
        f"{timestamp},{kwh},{temp},{ev},{hot_water},{pool},{heat}"
    )


def make_reading(timestamp="2024-01-01 00:00", kwh=1.0, temp=20.0, **overrides):
    fields = dict(
        customer_id="CUST-001",
        customer_name="Jane Doe",
        location_id="LOC-001",
        address="12 Main St",
        city="Springfield",
        state="IL",
        postal_code="62701",
        timestamp=timestamp,
        kwh=kwh,
        outside_temp=temp,
        ev_charging=False,
        hot_water_heater=False,
        pool_pump=False,
        heat_pump=False,
    )
    fields.update(overrides)
    return Reading(**fields)


def hourly_readings(count, kwh=1.0, start_day=1):
    """count consecutive hourly readings starting at 2024-01-<start_day> 00:00."""
    out = []
    for i in range(count):
        day, hour = divmod(i, 24)
        out.append(make_reading(f"2024-01-{start_day + day:02d} {hour:02d}:00", kwh=kwh))
    return out


@pytest.fixture
def settings(tmp_path):
    return Settings(
        table_name="calculated-energy",
        topic_id="energy-usage-summary",
        transformed_bucket="transformed-json",
        storage_root=str(tmp_path / "buckets"),
    )


@pytest.fixture
def clients():
    return PipelineClients(
        object_store=InMemoryObjectStore(),
        summary_table=InMemorySummaryTable(),
        notifier=InMemoryNotifier(),
    )


@pytest.fixture
def sample_csv_text():
    return SAMPLE_CSV.read_text(encoding="utf-8")
