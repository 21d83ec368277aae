import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import requests

from commute import config

logger = logging.getLogger("commute.schedule_downloader")

_ROW_RE = re.compile(r'<tr[^>]*class="[^"]*stop-schedule[^"]*"[^>]*>(.*?)</tr>', re.IGNORECASE | re.DOTALL)
_NAME_RE = re.compile(r'<div[^>]*class="[^"]*s-name[^"]*"[^>]*>(.*?)</div>', re.IGNORECASE | re.DOTALL)
_TIME_RE = re.compile(r'<span[^>]*>\s*(\d{1,2}:\d{2})\s*</span>')
_TAG_RE = re.compile(r'<[^>]+>')


class ScheduleFetchError(RuntimeError):
    pass


def _clean(text):
    text = _TAG_RE.sub('', text).replace('&amp;', '&')
    return ' '.join(text.split())


def parse_schedule_html(html, stop_name):
    """
    Departure times ("H:MM", no AM/PM) listed for `stop_name` in one Lakeland
    timetable page. Cells holding a dash or anything but a time are skipped.
    """
    wanted = ' '.join(stop_name.split())
    for row in _ROW_RE.findall(html or ''):
        name_match = _NAME_RE.search(row)
        name = _clean(name_match.group(1)) if name_match else _clean(row)
        if wanted in name:
            return _TIME_RE.findall(row)
    logger.warning(f"Stop '{stop_name}' not found in schedule page")
    return []


def to_24_hour(time_str, direction, is_weekend):
    """
    Map a bare "H:MM" timetable entry to "HH:MM".

    The site prints 12-hour times with no AM/PM marker. Which hours are morning
    depends on the timetable: eastbound weekday runs start at 4, eastbound
    weekend at 7, westbound weekday at 7, westbound weekend at 9. Everything
    else up to 11 is evening. This is a heuristic and is only as good as the
    published timetables.
    """
    hour_str, minute = time_str.split(':')
    hour = int(hour_str)
    if direction == 'eastbound':
        is_am = (7 <= hour <= 11) if is_weekend else (4 <= hour <= 11)
    else:
        is_am = (9 <= hour <= 11) if is_weekend else (7 <= hour <= 11)
    if not is_am and hour != 12:
        hour += 12
    return f"{hour:02d}:{minute}"


def download_schedule_page(schedule_id, url=config.LAKELAND_SCHEDULE_URL, timeout=config.PROVIDER_TIMEOUT_SECONDS):
    logger.info(f"Downloading schedule {schedule_id}...")
    try:
        response = requests.get(
            url,
            params={"action": "schedule", "id": schedule_id},
            headers={"User-Agent": config.SCHEDULE_USER_AGENT},
            timeout=timeout,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise ScheduleFetchError(f"Error downloading schedule {schedule_id}: {e}") from e
    return response.text


class LakelandScheduleFetcher:
    """Downloads the four Route 46 timetables in parallel and parses them."""

    def __init__(self, url=config.LAKELAND_SCHEDULE_URL, schedule_ids=None, stop_names=None,
                 timeout=config.PROVIDER_TIMEOUT_SECONDS):
        self.url = url
        self.schedule_ids = schedule_ids or config.SCHEDULE_IDS
        self.stop_names = stop_names or config.SCHEDULE_STOP_NAMES
        self.timeout = timeout

    def fetch_all(self):
        """
        Returns {"fetchedAt": iso, "schedules": {day_type: {direction: [HH:MM, ...]}}}.
        Raises ScheduleFetchError if any page fails or nothing could be parsed.
        """
        keys = list(self.schedule_ids.keys())
        with ThreadPoolExecutor(max_workers=len(keys)) as executor:
            pages = list(executor.map(
                lambda key: download_schedule_page(self.schedule_ids[key], self.url, self.timeout),
                keys,
            ))

        schedules = {"weekday": {}, "weekend": {}}
        total = 0
        for (day_type, direction), html in zip(keys, pages):
            raw = parse_schedule_html(html, self.stop_names[(day_type, direction)])
            times = [to_24_hour(t, direction, day_type == "weekend") for t in raw]
            schedules.setdefault(day_type, {})[direction] = times
            total += len(times)
            logger.info(f"Parsed {day_type} {direction}: {len(times)} departures")

        if total == 0:
            raise ScheduleFetchError("Schedule pages contained no departures")
        return {
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
            "schedules": schedules,
        }
