"""robots.txt parsing.

Grouping follows a small state machine:

    IDLE --User-agent--> AGENTS --User-agent--> AGENTS (group extends)
    AGENTS --other directive--> RULES --User-agent--> AGENTS (new group)

Sitemap lines are global and never change state. Disallow rules are kept
only while the current group lists the ``*`` agent. Patterns with ``*`` or
``$`` are dropped since matching is plain prefix comparison.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Set

logger = logging.getLogger("seo_audit.robots")

_IDLE = "idle"
_AGENTS = "agents"
_RULES = "rules"


@dataclass
class RobotsRules:
    disallow: List[str] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)


def _split_directive(line: str):
    if ":" not in line:
        return None, None
    key, value = line.split(":", 1)
    return key.strip().lower(), value.strip()


def parse_robots_txt(content: str) -> RobotsRules:
    state = _IDLE
    group_agents: Set[str] = set()
    disallow: Set[str] = set()
    sitemaps: Set[str] = set()

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue

        key, value = _split_directive(line)
        if key is None:
            continue

        if key == "sitemap":
            if value:
                sitemaps.add(value)
            continue

        if key == "user-agent":
            if state != _AGENTS:
                group_agents = set()
            group_agents.add(value.lower())
            state = _AGENTS
            continue

        # Any other directive closes the agent list of the current group.
        state = _RULES
        if key == "disallow" and "*" in group_agents:
            if value and "*" not in value and "$" not in value:
                disallow.add(value)

    rules = RobotsRules(disallow=sorted(disallow), sitemaps=sorted(sitemaps))
    logger.debug(f"robots.txt parsed: {len(rules.disallow)} disallow rules, {len(rules.sitemaps)} sitemaps")
    return rules
