# frontend/app.py

import json
from typing import Any, Dict

import requests
import streamlit as st

from backend import config
from backend.errors import ErrorCode, OCRServiceError, check_response
from backend.normalizer import record_from_object
from backend.readings import ProductionLog, chart_series, reading_from_record, time_since_last_scan
from backend.utils import build_timestamp, downscale_to_data_url, fixed_zone, format_local, now_utc

DEFAULT_BACKEND_URL = f"{config.BACKEND_URL.rstrip('/')}/api/ocr"

FIELD_LABELS = {
    "boxCount": "Boxes",
    "bottleCount": "Bottles",
    "operatingLine": "Operating line",
    "productionDate": "Production date",
    "plannedQuantity": "Planned quantity",
    "productName": "Product name",
    "completedQuantity": "Completed quantity",
    "lotNo": "LOT NO",
}


def call_backend(backend_url: str, image_data_url: str, timeout: float = 120) -> Dict[str, Any]:
    """
    POST the photo to the OCR backend and return its JSON record.
    Raises OCRServiceError for transport failures, error statuses and
    any response carrying an "error" field.
    """
    try:
        resp = requests.post(backend_url, json={"image": image_data_url}, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise OCRServiceError(ErrorCode.SERVER_ERROR, f"Error calling backend: {e}") from e

    try:
        payload = resp.json()
    except ValueError:
        payload = None
    return check_response(resp.status_code, payload)


def get_log(schema) -> ProductionLog:
    log = st.session_state.get("log")
    if log is None or log.schema.name != schema.name:
        log = ProductionLog(schema)
        st.session_state["log"] = log
    return log


def fmt(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, int):
        return f"{value:,}"
    return str(value)


def show_latest(log: ProductionLog, offset: float):
    latest = log.latest_relevant()
    if latest is None:
        st.info("No readings scanned yet.")
        return

    cols = st.columns(len(log.schema.fields) + 1)
    for col, name in zip(cols, log.schema.fields):
        col.metric(FIELD_LABELS.get(name, name), fmt(latest.value(name)))
    rate_label = "Rate (units/min)"
    cols[-1].metric(rate_label, fmt(latest.derived_rate), latest.status)
    st.caption(f"Last scan: {time_since_last_scan(log, now_utc())} "
               f"({format_local(latest.timestamp, 'yyyy-MM-dd HH:mm:ss', offset)})")


def show_chart(log: ProductionLog, offset: float):
    rows = chart_series(log, offset)
    if not rows:
        return
    st.subheader("Production trend")
    data = {"time": [r["time"] for r in rows]}
    for name in log.schema.chart_fields:
        data[FIELD_LABELS.get(name, name)] = [r[name] for r in rows]
    st.area_chart(data, x="time")


def show_log(log: ProductionLog, offset: float):
    st.subheader("Recent readings")
    entries = list(log)
    if not entries:
        st.write("No readings yet.")
        return

    for reading in reversed(entries):
        with st.container(border=True):
            st.caption(format_local(reading.timestamp, "MMM d, HH:mm:ss", offset))
            if not reading.is_relevant:
                st.warning("Not a production counter image")
                if reading.summary:
                    st.write(reading.summary)
            else:
                st.write(" | ".join(
                    f"{FIELD_LABELS.get(n, n)}: {fmt(reading.value(n))}" for n in log.schema.fields
                ))
                st.write(f"Rate: {fmt(reading.derived_rate)} / min ({reading.status})")
                edit_reading(log, reading.id, reading.value(log.schema.rate_field))
            if reading.image_ref:
                st.image(reading.image_ref, use_container_width=True)


def edit_reading(log: ProductionLog, reading_id: str, current: Any):
    rate_field = log.schema.rate_field
    with st.expander(f"Correct {FIELD_LABELS.get(rate_field, rate_field)}"):
        value = st.number_input(
            FIELD_LABELS.get(rate_field, rate_field),
            min_value=0,
            step=1,
            value=int(current or 0),
            key=f"edit-{reading_id}",
        )
        if st.button("Save", key=f"save-{reading_id}"):
            try:
                log.correct_field(reading_id, int(value))
            except (KeyError, ValueError) as e:
                st.error(str(e))
            else:
                st.rerun()


def start_scan():
    st.session_state["scanning"] = True


def analyze(log: ProductionLog, backend_url: str, image: str, timestamp) -> Dict[str, Any]:
    """Run one backend call and log the result; returns what to show after the rerun."""
    try:
        with st.spinner("Analyzing image..."):
            record = call_backend(backend_url.strip(), image)
    except OCRServiceError as e:
        return {"level": "warning" if e.is_soft else "error", "message": e.message}

    reading = log.append(
        reading_from_record(
            record_from_object(record, log.schema, record.get("rawText") or ""),
            log.schema,
            timestamp,
            image_ref=image,
        )
    )
    outcome: Dict[str, Any] = {"reading": reading.to_dict(), "response": record}
    if not reading.is_relevant:
        outcome["level"] = "warning"
        outcome["message"] = f"Not a production counter image: {reading.summary or ''}"
    return outcome


def show_last_scan():
    outcome = st.session_state.get("last_scan")
    if not outcome:
        return
    if outcome.get("level") == "error":
        st.error(outcome["message"])
    elif outcome.get("level") == "warning":
        st.warning(outcome["message"])
    if "reading" in outcome:
        with st.expander("Raw JSON response (debug)"):
            st.code(json.dumps(outcome["response"], indent=2, ensure_ascii=False), language="json")
            st.caption("Stored log entry")
            st.code(json.dumps(outcome["reading"], indent=2, ensure_ascii=False), language="json")


def scan(log: ProductionLog, backend_url: str, offset: float):
    st.subheader("Camera scan")
    photo = st.camera_input("Take a photo") or st.file_uploader(
        "...or upload a photo", type=["jpg", "jpeg", "png", "webp"]
    )
    if photo is None:
        st.session_state["scanning"] = False
        st.session_state.pop("last_scan", None)
        return

    image = downscale_to_data_url(photo.getvalue())
    if image is None:
        st.session_state["scanning"] = False
        st.error("Could not read the photo.")
        return

    now_local = now_utc().astimezone(fixed_zone(offset))
    c1, c2 = st.columns(2)
    photo_date = c1.date_input("Date", value=now_local.date())
    photo_time = c2.time_input("Time", value=now_local.time().replace(second=0, microsecond=0))

    # start_scan runs before the rerun, so the button stays disabled during the call
    st.button(
        "Confirm and analyze",
        disabled=st.session_state.get("scanning", False),
        on_click=start_scan,
    )
    if st.session_state.get("scanning"):
        try:
            timestamp = build_timestamp(photo_date.isoformat(), photo_time.strftime("%H:%M"), offset)
            st.session_state["last_scan"] = analyze(log, backend_url, image, timestamp)
        finally:
            st.session_state["scanning"] = False
        st.rerun()

    show_last_scan()


def main():
    st.set_page_config(page_title="Production Counter Tracker", layout="wide")
    st.title("Real-time Production Tracking")

    schema = config.get_schema()
    log = get_log(schema)

    with st.sidebar:
        st.header("Backend Settings")
        backend_url = st.text_input(
            "Backend /api/ocr URL",
            value=DEFAULT_BACKEND_URL,
            help="Make sure the FastAPI backend is running on this URL.",
        )
        offset = st.number_input(
            "Display time zone (UTC offset, hours)",
            value=float(config.DISPLAY_TZ_OFFSET_HOURS),
            step=0.5,
        )
        st.markdown("---")
        st.write(f"Field schema: **{schema.name}**")
        st.write(f"Normal rate: **>= {schema.normal_rate_threshold} / min**")

    show_latest(log, offset)
    scan(log, backend_url, offset)
    show_chart(log, offset)
    show_log(log, offset)


if __name__ == "__main__":
    main()
