"""
AI Advisor

Stateless text analysis over the configured LLM: goal suggestions,
submission scoring, blocker triage, weekly report and sentiment. Every
method returns a usable result; when the model is disabled, unreachable or
returns something unparsable, a deterministic fallback is returned instead.
"""
from typing import Any, Dict, List, Optional, Sequence
import json
import re

from langchain_core.prompts import ChatPromptTemplate

from ..config import settings
from ..models.blocker import Blocker
from ..models.standup import Standup
from ..utils.logging import get_logger
from .llm_provider import LLMError, LLMProvider, get_llm_provider

logger = get_logger(__name__)


DEFAULT_GOAL_SUGGESTIONS = {
    "Engineering": [
        "Complete code review for pending pull requests",
        "Document recent feature implementations",
        "Fix high-priority bugs from the backlog",
    ],
    "Design": [
        "Finalize mockups for the current sprint",
        "Conduct user research review",
        "Update design system components",
    ],
    "Marketing": [
        "Review campaign performance metrics",
        "Draft content for upcoming launch",
        "Coordinate with sales on lead generation",
    ],
    "default": [
        "Complete pending tasks from yesterday",
        "Attend scheduled meetings and follow up on action items",
        "Document progress and update relevant stakeholders",
    ],
}


def default_goal_suggestions(department: Optional[str]) -> List[str]:
    return list(DEFAULT_GOAL_SUGGESTIONS.get(department or "", DEFAULT_GOAL_SUGGESTIONS["default"]))


def default_standup_analysis() -> Dict[str, Any]:
    return {
        "score": 7,
        "is_specific": True,
        "aligns_with_goal": True,
        "reason_quality": "good",
        "feedback": "Good submission! Consider adding more specific metrics or outcomes.",
        "highlights": ["Completed on time"],
        "improvements": ["Add more quantifiable results"],
    }


def default_blocker_analysis() -> Dict[str, Any]:
    return {
        "suggested_category": "TECHNICAL",
        "severity_appropriate": True,
        "estimated_resolution_time": "4-8 hours",
        "similar_resolutions": ["Contact the relevant team lead for guidance"],
        "recommended_action": "Escalate to manager if not resolved within 24 hours",
        "requires_escalation": False,
    }


def default_weekly_report(metrics: Dict[str, Any]) -> Dict[str, Any]:
    submission_rate = metrics.get("submission_rate", 0)
    completion_rate = metrics.get("completion_rate", 0)
    critical = metrics.get("blockers_by_severity", {}).get("critical", 0)
    return {
        "executive_summary": (
            f"This week saw {metrics.get('total_standups', 0)} standups with a {submission_rate}% "
            f"submission rate. Goal completion rate was {completion_rate}%. "
            f"There were {metrics.get('blocker_count', 0)} blockers raised."
        ),
        "concerns": ["Critical blockers need immediate attention"] if critical > 0 else [],
        "positives": (
            ["Strong submission compliance"] if submission_rate > 80
            else ["Team is actively participating"]
        ),
        "recommendations": [
            "Continue monitoring blocker resolution times",
            "Encourage detailed goal setting",
        ],
        "focus_areas": [],
        "trend": "improving" if completion_rate > 80 else "stable",
    }


def default_sentiment_analysis() -> Dict[str, Any]:
    return {
        "sentiment": "NEUTRAL",
        "engagement_level": "MEDIUM",
        "burnout_indicators": {"detected": False, "reason": None},
        "needs_attention": False,
        "support_suggestion": None,
    }


def extract_json(content: str, expect: type = dict) -> Optional[Any]:
    """Pull the first JSON object (or array) out of model output.

    Prefers a fenced ```json block, then falls back to the outermost
    braces/brackets in the text.
    """
    if not content:
        return None

    candidates = []
    fenced = re.search(r"```(?:json)?\s*(.*?)```", content, re.DOTALL)
    if fenced:
        candidates.append(fenced.group(1).strip())

    pattern = r"\{[\s\S]*\}" if expect is dict else r"\[[\s\S]*\]"
    match = re.search(pattern, content)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, expect):
            return parsed
    return None


SYSTEM_PROMPT = "You are an assistant for a workplace daily standup system. Respond with JSON only."

GOALS_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You are a productivity assistant for a workplace standup system."),
    ("human", """Analyze the following 7 days of work history for an employee in the {department} department:

{history}

Based on this pattern, suggest 3-5 specific, actionable, and achievable goals for today.
Goals should:
- Be concrete and measurable
- Build on previous work or address incomplete items
- Be realistic for a single workday
- Be relevant to the {department} department

Return ONLY a JSON array of strings with the goal suggestions. No explanation needed."""),
])

STANDUP_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You are a productivity analyst evaluating a daily standup submission."),
    ("human", """Goal Set: "{goal}"

Achievement Submitted:
- Title: "{title}"
- Description: "{description}"
- Status: {goal_status}
{reason}- Files attached: {file_count}

Analyze this submission and return a JSON object with:
{{
  "score": (1-10 quality score),
  "is_specific": (boolean, is the achievement description specific and detailed?),
  "aligns_with_goal": (boolean, does the achievement align with the stated goal?),
  "reason_quality": ("excellent" | "good" | "fair" | "poor"),
  "feedback": (one constructive sentence for the employee),
  "highlights": (array of 1-3 positive points),
  "improvements": (array of 0-2 suggestions for improvement)
}}

Return ONLY the JSON object."""),
])

BLOCKER_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You are a technical support analyst helping resolve workplace blockers."),
    ("human", """New Blocker:
- Title: "{title}"
- Description: "{description}"
- Category: {category}
- Severity: {severity}
- Support Required: {support_required}

{similar}

Analyze this blocker and return a JSON object with:
{{
  "suggested_category": (confirm or suggest better category),
  "severity_appropriate": (boolean),
  "suggested_severity": (if not appropriate, suggest correct level),
  "estimated_resolution_time": (e.g. "2-4 hours", "1-2 days"),
  "similar_resolutions": (array of 1-3 suggested approaches),
  "recommended_action": (immediate next step to take),
  "requires_escalation": (boolean),
  "escalation_reason": (if requires escalation, explain why)
}}

Return ONLY the JSON object."""),
])

WEEKLY_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You are an executive productivity analyst generating a weekly team report."),
    ("human", """Weekly Metrics:
- Total Standups: {total_standups}
- Submission Rate: {submission_rate}%
- Goal Completion Rate: {completion_rate}%
- Total Blockers: {blocker_count}
- Critical Blockers: {critical}
- High Blockers: {high}
- Resolved Blockers: {resolved_blockers}

Department Breakdown:
{departments}

Generate an executive summary and return a JSON object with:
{{
  "executive_summary": (3-4 sentence overview for leadership),
  "concerns": (array of 1-3 items that need attention),
  "positives": (array of 1-3 positive observations),
  "recommendations": (array of 2-3 actionable recommendations),
  "focus_areas": (array of departments or areas needing focus),
  "trend": ("improving" | "stable" | "declining")
}}

Return ONLY the JSON object."""),
])

SENTIMENT_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You are a workplace wellness analyst detecting signs of stress or burnout."),
    ("human", """Analyze the following text from a daily standup submission:
"{text}"

Return a JSON object with:
{{
  "sentiment": ("POSITIVE" | "NEUTRAL" | "NEGATIVE" | "FRUSTRATED"),
  "engagement_level": ("HIGH" | "MEDIUM" | "LOW"),
  "burnout_indicators": {{"detected": (boolean), "reason": (explanation or null)}},
  "needs_attention": (boolean, should a manager be alerted?),
  "support_suggestion": (null or suggestion for how to support this employee)
}}

Return ONLY the JSON object."""),
])


class AIAdvisor:
    """Advisory calls over an LLMProvider with canned fallbacks"""

    def __init__(self, provider: Optional[LLMProvider] = None, enabled: Optional[bool] = None):
        self._provider = provider
        self._enabled = enabled

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider()
        return self._provider

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return settings.enable_ai_suggestions and self.provider.is_configured

    async def _ask(self, template: ChatPromptTemplate, expect: type = dict, **values: Any) -> Optional[Any]:
        """Render the template, call the model and parse JSON; None on any failure"""

        if not self.enabled:
            return None

        messages = template.format_messages(**values)
        system_prompt = "\n".join(m.content for m in messages if m.type == "system") or SYSTEM_PROMPT
        prompt = "\n".join(m.content for m in messages if m.type != "system")

        try:
            result = await self.provider.generate_completion(prompt=prompt, system_prompt=system_prompt)
        except LLMError as e:
            logger.warning(f"AI request failed, using fallback: {e}")
            return None

        parsed = extract_json(result.get("content", ""), expect)
        if parsed is None:
            logger.warning("AI response could not be parsed, using fallback")
        return parsed

    async def suggest_goals(self, recent_standups: Sequence[Standup], department: Optional[str]) -> List[str]:
        history = "\n\n".join(
            f"Date: {s.date.isoformat()}\n"
            f"Goal: {s.today_goal or 'Not set'}\n"
            f"Achievement: {s.achievement_title or 'Not submitted'}\n"
            f"Status: {s.goal_status or 'Pending'}"
            for s in recent_standups
        )
        parsed = await self._ask(
            GOALS_PROMPT,
            expect=list,
            department=department or "General",
            history=history or "No recent history available."
        )
        goals = [str(g).strip() for g in (parsed or []) if str(g).strip()]
        if not goals:
            return default_goal_suggestions(department)
        return goals[:5]

    async def analyze_standup(self, standup: Standup, file_count: int = 0) -> Dict[str, Any]:
        reason = f'- Reason for incomplete: "{standup.not_achieved_reason}"\n' if standup.not_achieved_reason else ""
        parsed = await self._ask(
            STANDUP_PROMPT,
            goal=standup.today_goal or "No goal set",
            title=standup.achievement_title or "",
            description=standup.achievement_desc or "",
            goal_status=standup.goal_status or "UNKNOWN",
            reason=reason,
            file_count=file_count
        )
        if parsed is None:
            return default_standup_analysis()
        return {**default_standup_analysis(), **parsed}

    async def analyze_blocker(self, blocker: Blocker, similar_resolved: Sequence[Blocker] = ()) -> Dict[str, Any]:
        if similar_resolved:
            similar = "Similar Past Blockers (Resolved):\n" + "\n\n".join(
                f"Title: {b.title}\nResolution: {b.resolution_notes}" for b in similar_resolved
            )
        else:
            similar = "No similar past blockers found."

        parsed = await self._ask(
            BLOCKER_PROMPT,
            title=blocker.title,
            description=blocker.description,
            category=blocker.category,
            severity=blocker.severity,
            support_required=blocker.support_required,
            similar=similar
        )
        if parsed is None:
            return default_blocker_analysis()
        return {**default_blocker_analysis(), **parsed}

    async def generate_weekly_report(self, metrics: Dict[str, Any]) -> Dict[str, Any]:
        by_severity = metrics.get("blockers_by_severity", {})
        departments = "\n".join(
            f"- {d['department']}: {d['standups']} standups, {d['blockers']} blockers"
            for d in metrics.get("by_department", [])
        ) or "No department data"

        parsed = await self._ask(
            WEEKLY_PROMPT,
            total_standups=metrics.get("total_standups", 0),
            submission_rate=metrics.get("submission_rate", 0),
            completion_rate=metrics.get("completion_rate", 0),
            blocker_count=metrics.get("blocker_count", 0),
            critical=by_severity.get("critical", 0),
            high=by_severity.get("high", 0),
            resolved_blockers=metrics.get("resolved_blockers", 0),
            departments=departments
        )
        fallback = default_weekly_report(metrics)
        if parsed is None:
            return fallback
        return {**fallback, **parsed}

    async def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        parsed = await self._ask(SENTIMENT_PROMPT, text=text)
        if parsed is None:
            return default_sentiment_analysis()
        return {**default_sentiment_analysis(), **parsed}
