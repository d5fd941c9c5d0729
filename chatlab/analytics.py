"""Social analytics over a stored ChatLab session.

Every analysis has the signature

    analysis(store, session_id, time_filter=None, *, tz=None, now=None)

and returns one of the *Analysis dataclasses from chatlab.models. Calendar
bucketing happens in Python in an explicit timezone (default: the configured
one) so results do not depend on the host's local zone; now is injectable
for reproducible "days since" and "current streak" values.

Filters shared by all analyses:
- The system member (SYSTEM_MEMBER_NAME) is always excluded
- Text analyses (repeat, catchphrase, monologue) only see TEXT messages
- Activity analyses (night owl, dragon king, diving, member activity)
  see every message type except SYSTEM

Ranked lists are built with stable sorts, so ties keep first-appearance
order.
"""

from collections import Counter, OrderedDict
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Optional, Tuple, Union

from .config import resolve_timezone
from .constants import (
    CATCHPHRASE_MIN_LENGTH,
    CATCHPHRASES_PER_MEMBER,
    CHAMPION_CONSECUTIVE_DAY_WEIGHT,
    CHAMPION_LAST_SPEAKER_WEIGHT,
    CHAMPION_NIGHT_MESSAGE_WEIGHT,
    HOT_CONTENT_LIMIT,
    MONOLOGUE_HIGH_STREAK,
    MONOLOGUE_MAX_INTERVAL_SECONDS,
    MONOLOGUE_MID_STREAK,
    MONOLOGUE_MIN_STREAK,
    NIGHT_DAY_BOUNDARY_HOUR,
    NIGHT_OWL_DEFAULT_TITLE,
    NIGHT_OWL_TITLES,
    NIGHT_START_HOUR,
    REPEAT_MIN_CHAIN_LENGTH,
    SECONDS_PER_DAY,
    SYSTEM_MEMBER_NAME,
)
from .models import (
    Catchphrase,
    CatchphraseAnalysis,
    ConsecutiveRecord,
    DivingAnalysis,
    DivingItem,
    DragonKingAnalysis,
    HotContent,
    MaxComboRecord,
    MemberActivity,
    MemberCatchphrases,
    MessageType,
    MonologueAnalysis,
    MonologueItem,
    NightOwlAnalysis,
    NightOwlChampion,
    NightOwlItem,
    RankItem,
    RateItem,
    RepeatAnalysis,
    SpeakerTimeItem,
    TimeFilter,
)
from .utils import classify, format_minutes, percentage, shifted_date

TimezoneLike = Union[str, tzinfo, None]

NOT_SYSTEM_MEMBER = "m.name != :system_name"
TEXT_ONLY = f"msg.type = {int(MessageType.TEXT)}"
NOT_SYSTEM_TYPE = f"msg.type != {int(MessageType.SYSTEM)}"
NON_EMPTY_TEXT = "msg.content IS NOT NULL AND TRIM(msg.content) != ''"

TEXT_FILTERS = (NOT_SYSTEM_MEMBER, TEXT_ONLY)
ACTIVITY_FILTERS = (NOT_SYSTEM_MEMBER, NOT_SYSTEM_TYPE)

MESSAGE_ROWS_SQL = """
    SELECT msg.id, msg.sender_id, msg.ts, msg.content, m.platform_id, m.name
    FROM message msg
    JOIN member m ON msg.sender_id = m.id
    {where}
    ORDER BY msg.ts ASC, msg.id ASC
"""


def build_where(
    time_filter: Optional[TimeFilter], *conditions: str
) -> Tuple[str, Dict[str, object]]:
    """WHERE clause and bind parameters for a time range plus conditions."""
    clauses = list(conditions)
    params: Dict[str, object] = {"system_name": SYSTEM_MEMBER_NAME}
    if time_filter is not None:
        if time_filter.start_ts is not None:
            clauses.append("msg.ts >= :start_ts")
            params["start_ts"] = time_filter.start_ts
        if time_filter.end_ts is not None:
            clauses.append("msg.ts <= :end_ts")
            params["end_ts"] = time_filter.end_ts
    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where, params


def _fetch_messages(reader, time_filter: Optional[TimeFilter], *conditions: str):
    where, params = build_where(time_filter, *conditions)
    return reader.query(MESSAGE_ROWS_SQL.format(where=where), params)


def _resolve_now(now: Optional[datetime], tz: tzinfo) -> datetime:
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


class _Members:
    """Member id -> (platform id, name), in first-appearance order."""

    def __init__(self):
        self._info: "OrderedDict[int, Tuple[str, str]]" = OrderedDict()

    def see(self, row) -> int:
        member_id = row["sender_id"]
        if member_id not in self._info:
            self._info[member_id] = (row["platform_id"], row["name"])
        return member_id

    def platform_id(self, member_id: int) -> str:
        return self._info[member_id][0]

    def name(self, member_id: int) -> str:
        return self._info[member_id][1]

    def rank(self, counts: Dict[int, int], total: int) -> List[RankItem]:
        items = [
            RankItem(
                member_id=member_id,
                platform_id=self.platform_id(member_id),
                name=self.name(member_id),
                count=count,
                percentage=percentage(count, total),
            )
            for member_id, count in counts.items()
        ]
        return sorted(items, key=lambda item: -item.count)


# =============================================================================
# Repeat chains
# =============================================================================


def get_repeat_analysis(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> RepeatAnalysis:
    """Find runs of different members sending the same text ("echo chains").

    Messages are scanned in (ts, id) order. A chain extends when the trimmed
    content is unchanged and the sender differs from the chain's last sender
    (a member repeating themselves neither extends nor breaks it). When the
    content changes, the chain is closed and the new message's sender is
    credited as the breaker. Chains shorter than REPEAT_MIN_CHAIN_LENGTH are
    discarded.

    Example:
        A:"hi", B:"hi", C:"hi", D:"bye" gives one chain of length 3 with
        originator A, initiator B and breaker D.
    """
    with store.session(session_id) as reader:
        rows = _fetch_messages(reader, time_filter, *TEXT_FILTERS, NON_EMPTY_TEXT)

    members = _Members()
    message_counts: Counter = Counter()
    originators: Counter = Counter()
    initiators: Counter = Counter()
    breakers: Counter = Counter()
    chain_lengths: Counter = Counter()
    # content -> [count, max_chain_length, originator_id, last_ts]
    content_stats: "OrderedDict[str, list]" = OrderedDict()
    totals = {"chains": 0, "length": 0}

    def close_chain(chain: List[Tuple[int, int]], content: str, breaker: Optional[int]):
        if len(chain) < REPEAT_MIN_CHAIN_LENGTH:
            return
        length = len(chain)
        totals["chains"] += 1
        totals["length"] += length
        originator = chain[0][0]
        originators[originator] += 1
        initiators[chain[1][0]] += 1
        if breaker is not None:
            breakers[breaker] += 1
        chain_lengths[length] += 1

        start_ts = chain[0][1]
        stats = content_stats.get(content)
        if stats is None:
            content_stats[content] = [1, length, originator, start_ts]
        else:
            stats[0] += 1
            stats[3] = max(stats[3], start_ts)
            if length > stats[1]:
                stats[1] = length
                stats[2] = originator

    current: Optional[str] = None
    chain: List[Tuple[int, int]] = []  # (member id, ts)
    for row in rows:
        member_id = members.see(row)
        message_counts[member_id] += 1
        content = row["content"].strip()

        if content == current:
            if chain[-1][0] != member_id:
                chain.append((member_id, row["ts"]))
        else:
            if current is not None:
                close_chain(chain, current, member_id)
            current = content
            chain = [(member_id, row["ts"])]

    if current is not None:
        close_chain(chain, current, None)

    total_chains = totals["chains"]

    def rates(counts: Counter) -> List[RateItem]:
        items = [
            RateItem(
                member_id=member_id,
                platform_id=members.platform_id(member_id),
                name=members.name(member_id),
                count=count,
                total_messages=message_counts[member_id],
                rate=percentage(count, message_counts[member_id]),
            )
            for member_id, count in counts.items()
            if message_counts[member_id] > 0
        ]
        return sorted(items, key=lambda item: -item.rate)

    hot_contents = sorted(
        (
            HotContent(
                content=content,
                count=stats[0],
                max_chain_length=stats[1],
                originator_name=members.name(stats[2]),
                last_ts=stats[3],
            )
            for content, stats in content_stats.items()
        ),
        key=lambda item: -item.max_chain_length,
    )

    return RepeatAnalysis(
        originators=members.rank(originators, total_chains),
        initiators=members.rank(initiators, total_chains),
        breakers=members.rank(breakers, total_chains),
        originator_rates=rates(originators),
        initiator_rates=rates(initiators),
        breaker_rates=rates(breakers),
        chain_length_distribution=sorted(chain_lengths.items()),
        hot_contents=hot_contents[:HOT_CONTENT_LIMIT],
        avg_chain_length=round(totals["length"] / total_chains, 2) if total_chains else 0.0,
        total_repeat_chains=total_chains,
    )


# =============================================================================
# Catchphrases
# =============================================================================


def get_catchphrase_analysis(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> CatchphraseAnalysis:
    """Each member's most frequent distinct texts (trimmed, at least 2 chars)."""
    where, params = build_where(
        time_filter,
        *TEXT_FILTERS,
        "msg.content IS NOT NULL",
        "LENGTH(TRIM(msg.content)) >= :min_length",
    )
    params["min_length"] = CATCHPHRASE_MIN_LENGTH

    with store.session(session_id) as reader:
        rows = reader.query(
            f"""
            SELECT
                m.id AS member_id,
                m.platform_id,
                m.name,
                TRIM(msg.content) AS content,
                COUNT(*) AS count,
                MIN(msg.id) AS first_id
            FROM message msg
            JOIN member m ON msg.sender_id = m.id
            {where}
            GROUP BY m.id, TRIM(msg.content)
            ORDER BY m.id, count DESC, first_id ASC
            """,
            params,
        )

    by_member: "OrderedDict[int, MemberCatchphrases]" = OrderedDict()
    for row in rows:
        entry = by_member.get(row["member_id"])
        if entry is None:
            entry = MemberCatchphrases(
                member_id=row["member_id"], platform_id=row["platform_id"], name=row["name"]
            )
            by_member[row["member_id"]] = entry
        if len(entry.catchphrases) < CATCHPHRASES_PER_MEMBER:
            entry.catchphrases.append(Catchphrase(content=row["content"], count=row["count"]))

    members = sorted(by_member.values(), key=lambda m: -m.total)
    return CatchphraseAnalysis(members=members)


# =============================================================================
# Night owls
# =============================================================================


def _night_bucket(hour: int) -> Optional[str]:
    if hour == NIGHT_START_HOUR:
        return "h23"
    if hour in (0, 1, 2):
        return f"h{hour}"
    if 3 <= hour < NIGHT_DAY_BOUNDARY_HOUR:
        return "h3to4"
    return None


def _streaks(days: List[date]) -> Tuple[int, int]:
    """(longest run, final run) of consecutive days in a sorted list."""
    longest = current = 1
    for previous, day in zip(days, days[1:]):
        if (day - previous).days == 1:
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest, current


def get_night_owl_analysis(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> NightOwlAnalysis:
    """Late-night activity, last/first speakers per day and night streaks.

    Days start at 05:00 local time: a message at 04:59 belongs to the
    previous day. Night messages are those sent 23:00-04:59.
    """
    zone = resolve_timezone(tz)
    current_time = _resolve_now(now, zone)

    with store.session(session_id) as reader:
        rows = _fetch_messages(reader, time_filter, *ACTIVITY_FILTERS)

    if not rows:
        return NightOwlAnalysis()

    members = _Members()
    totals: Counter = Counter()
    night: "OrderedDict[int, Dict[str, int]]" = OrderedDict()
    night_days: "OrderedDict[int, set]" = OrderedDict()
    # shifted day -> [(member id, minutes since midnight)] in message order
    daily: "OrderedDict[date, List[Tuple[int, int]]]" = OrderedDict()

    for row in rows:
        member_id = members.see(row)
        local = datetime.fromtimestamp(row["ts"], zone)
        day = shifted_date(local, NIGHT_DAY_BOUNDARY_HOUR)
        totals[member_id] += 1

        bucket = _night_bucket(local.hour)
        if bucket is not None:
            breakdown = night.setdefault(
                member_id, {"h23": 0, "h0": 0, "h1": 0, "h2": 0, "h3to4": 0}
            )
            breakdown[bucket] += 1
            night_days.setdefault(member_id, set()).add(day)

        daily.setdefault(day, []).append((member_id, local.hour * 60 + local.minute))

    total_days = len(daily)

    night_owl_rank = []
    for member_id, breakdown in night.items():
        count = sum(breakdown.values())
        night_owl_rank.append(
            NightOwlItem(
                member_id=member_id,
                platform_id=members.platform_id(member_id),
                name=members.name(member_id),
                total_night_messages=count,
                title=classify(count, NIGHT_OWL_TITLES, NIGHT_OWL_DEFAULT_TITLE),
                hourly_breakdown=breakdown,
                percentage=percentage(count, totals[member_id]),
            )
        )
    night_owl_rank.sort(key=lambda item: -item.total_night_messages)

    last_times: "OrderedDict[int, List[int]]" = OrderedDict()
    first_times: "OrderedDict[int, List[int]]" = OrderedDict()
    for messages in daily.values():
        last_member, last_minutes = messages[-1]
        last_times.setdefault(last_member, []).append(last_minutes)
        first_member, first_minutes = messages[0]
        first_times.setdefault(first_member, []).append(first_minutes)

    def speaker_rank(times_by_member, extreme) -> List[SpeakerTimeItem]:
        items = [
            SpeakerTimeItem(
                member_id=member_id,
                platform_id=members.platform_id(member_id),
                name=members.name(member_id),
                count=len(times),
                avg_time=format_minutes(sum(times) / len(times)),
                extreme_time=format_minutes(extreme(times)),
                percentage=percentage(len(times), total_days),
            )
            for member_id, times in times_by_member.items()
        ]
        return sorted(items, key=lambda item: -item.count)

    last_speaker_rank = speaker_rank(last_times, max)
    first_speaker_rank = speaker_rank(first_times, min)

    today = shifted_date(current_time, NIGHT_DAY_BOUNDARY_HOUR)
    recent = {today, today - timedelta(days=1)}
    consecutive_records = []
    for member_id, days in night_days.items():
        ordered = sorted(days)
        longest, final = _streaks(ordered)
        consecutive_records.append(
            ConsecutiveRecord(
                member_id=member_id,
                platform_id=members.platform_id(member_id),
                name=members.name(member_id),
                max_consecutive_days=longest,
                current_streak=final if ordered[-1] in recent else 0,
            )
        )
    consecutive_records.sort(key=lambda item: -item.max_consecutive_days)

    # night messages, last-speaker days, longest streak
    scores: "OrderedDict[int, List[int]]" = OrderedDict()
    for item in night_owl_rank:
        scores.setdefault(item.member_id, [0, 0, 0])[0] = item.total_night_messages
    for item in last_speaker_rank:
        scores.setdefault(item.member_id, [0, 0, 0])[1] = item.count
    for item in consecutive_records:
        scores.setdefault(item.member_id, [0, 0, 0])[2] = item.max_consecutive_days

    champions = []
    for member_id, (night_messages, last_count, streak) in scores.items():
        score = (
            night_messages * CHAMPION_NIGHT_MESSAGE_WEIGHT
            + last_count * CHAMPION_LAST_SPEAKER_WEIGHT
            + streak * CHAMPION_CONSECUTIVE_DAY_WEIGHT
        )
        if score > 0:
            champions.append(
                NightOwlChampion(
                    member_id=member_id,
                    platform_id=members.platform_id(member_id),
                    name=members.name(member_id),
                    score=score,
                    night_messages=night_messages,
                    last_speaker_count=last_count,
                    consecutive_days=streak,
                )
            )
    champions.sort(key=lambda item: -item.score)

    return NightOwlAnalysis(
        night_owl_rank=night_owl_rank,
        last_speaker_rank=last_speaker_rank,
        first_speaker_rank=first_speaker_rank,
        consecutive_records=consecutive_records,
        champions=champions,
        total_days=total_days,
    )


# =============================================================================
# Dragon king
# =============================================================================


def get_dragon_king_analysis(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> DragonKingAnalysis:
    """Count the days on which each member was the most active.

    Every member tied at a day's maximum earns that day.
    """
    zone = resolve_timezone(tz)
    with store.session(session_id) as reader:
        rows = _fetch_messages(reader, time_filter, *ACTIVITY_FILTERS)

    members = _Members()
    per_day: "OrderedDict[date, Counter]" = OrderedDict()
    for row in rows:
        member_id = members.see(row)
        day = datetime.fromtimestamp(row["ts"], zone).date()
        per_day.setdefault(day, Counter())[member_id] += 1

    dragon_days: "OrderedDict[int, int]" = OrderedDict()
    for counts in per_day.values():
        top = max(counts.values())
        for member_id, count in counts.items():
            if count == top:
                dragon_days[member_id] = dragon_days.get(member_id, 0) + 1

    total_days = len(per_day)
    return DragonKingAnalysis(rank=members.rank(dragon_days, total_days), total_days=total_days)


# =============================================================================
# Diving
# =============================================================================


def get_diving_analysis(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> DivingAnalysis:
    """Members ordered by their last message, longest silent first."""
    now_ts = _resolve_now(now, resolve_timezone(tz)).timestamp()
    where, params = build_where(time_filter, *ACTIVITY_FILTERS)

    with store.session(session_id) as reader:
        rows = reader.query(
            f"""
            SELECT m.id AS member_id, m.platform_id, m.name, MAX(msg.ts) AS last_ts
            FROM member m
            JOIN message msg ON m.id = msg.sender_id
            {where}
            GROUP BY m.id
            ORDER BY last_ts ASC, m.id ASC
            """,
            params,
        )

    return DivingAnalysis(
        rank=[
            DivingItem(
                member_id=row["member_id"],
                platform_id=row["platform_id"],
                name=row["name"],
                last_message_ts=row["last_ts"],
                days_since_last_message=int((now_ts - row["last_ts"]) // SECONDS_PER_DAY),
            )
            for row in rows
        ]
    )


# =============================================================================
# Monologues
# =============================================================================


def get_monologue_analysis(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> MonologueAnalysis:
    """Streaks of one member talking to themselves.

    A streak is consecutive text messages from one sender with gaps of at
    most MONOLOGUE_MAX_INTERVAL_SECONDS. Streaks of 3+ count, tiered as
    low (3-4), mid (5-9) and high (10+).

    Example:
        A at t=0, 100, 200, 450 then B gives one streak of 4 for A.
    """
    with store.session(session_id) as reader:
        rows = _fetch_messages(reader, time_filter, *TEXT_FILTERS)

    if not rows:
        return MonologueAnalysis()

    members = _Members()
    stats: "OrderedDict[int, MonologueItem]" = OrderedDict()
    best: Optional[Tuple[int, int, int]] = None  # (member id, length, start ts)

    def close_streak(member_id: int, length: int, start_ts: int) -> None:
        nonlocal best
        if length < MONOLOGUE_MIN_STREAK:
            return
        item = stats.get(member_id)
        if item is None:
            item = MonologueItem(
                member_id=member_id,
                platform_id=members.platform_id(member_id),
                name=members.name(member_id),
                total_streaks=0,
                max_combo=0,
                low_streak=0,
                mid_streak=0,
                high_streak=0,
            )
            stats[member_id] = item
        item.total_streaks += 1
        item.max_combo = max(item.max_combo, length)
        if length >= MONOLOGUE_HIGH_STREAK:
            item.high_streak += 1
        elif length >= MONOLOGUE_MID_STREAK:
            item.mid_streak += 1
        else:
            item.low_streak += 1
        if best is None or length > best[1]:
            best = (member_id, length, start_ts)

    sender: Optional[int] = None
    length = 0
    start_ts = last_ts = 0
    for row in rows:
        member_id = members.see(row)
        ts = row["ts"]
        if member_id == sender and ts - last_ts <= MONOLOGUE_MAX_INTERVAL_SECONDS:
            length += 1
        else:
            if sender is not None:
                close_streak(sender, length, start_ts)
            sender, length, start_ts = member_id, 1, ts
        last_ts = ts
    close_streak(sender, length, start_ts)

    record = None
    if best is not None:
        member_id, combo, combo_start = best
        record = MaxComboRecord(
            member_id=member_id,
            platform_id=members.platform_id(member_id),
            member_name=members.name(member_id),
            combo_length=combo,
            start_ts=combo_start,
        )

    rank = sorted(stats.values(), key=lambda item: -item.total_streaks)
    return MonologueAnalysis(rank=rank, max_combo_record=record)


# =============================================================================
# Activity overview
# =============================================================================


def get_member_activity(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> List[MemberActivity]:
    """Message count per member, most active first."""
    where, params = build_where(time_filter, *ACTIVITY_FILTERS)
    with store.session(session_id) as reader:
        rows = reader.query(
            f"""
            SELECT m.id AS member_id, m.platform_id, m.name, COUNT(*) AS message_count
            FROM message msg
            JOIN member m ON msg.sender_id = m.id
            {where}
            GROUP BY m.id
            ORDER BY message_count DESC, m.id ASC
            """,
            params,
        )

    total = sum(row["message_count"] for row in rows)
    return [
        MemberActivity(
            member_id=row["member_id"],
            platform_id=row["platform_id"],
            name=row["name"],
            message_count=row["message_count"],
            percentage=percentage(row["message_count"], total),
        )
        for row in rows
    ]


def get_daily_activity(
    store,
    session_id: str,
    time_filter: Optional[TimeFilter] = None,
    *,
    tz: TimezoneLike = None,
    now: Optional[datetime] = None,
) -> List[Tuple[date, int]]:
    """Messages per local calendar day, with silent days filled in as 0."""
    zone = resolve_timezone(tz)
    where, params = build_where(time_filter, *ACTIVITY_FILTERS)
    with store.session(session_id) as reader:
        rows = reader.query(
            f"""
            SELECT msg.ts FROM message msg
            JOIN member m ON msg.sender_id = m.id
            {where}
            """,
            params,
        )

    counts = Counter(datetime.fromtimestamp(row["ts"], zone).date() for row in rows)
    if not counts:
        return []

    first, last = min(counts), max(counts)
    return [
        (first + timedelta(days=offset), counts.get(first + timedelta(days=offset), 0))
        for offset in range((last - first).days + 1)
    ]
