"""Rule-based reply selection for the simulated assistant.

Rules are data: an ordered tuple of ``IntentRule`` checked first-match-wins
against the lowercased, stripped input. Earlier rules take priority, so a
greeting that ends with ``?`` is still answered as a greeting.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Pattern, Sequence, Tuple, Union

ASSISTANT_NAME = "Pidima"

Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class IntentRule:
    name: str
    predicate: Predicate
    response: str

    def matches(self, normalized: str) -> bool:
        return bool(self.predicate(normalized))


def pattern(*regexes: Union[str, Pattern[str]]) -> Predicate:
    """Predicate that is true when any of ``regexes`` is found in the text."""
    compiled = [re.compile(r) if isinstance(r, str) else r for r in regexes]

    def _test(text: str) -> bool:
        return any(rx.search(text) for rx in compiled)

    return _test


def ends_with_question(text: str) -> bool:
    return text.endswith("?")


def any_of(*predicates: Predicate) -> Predicate:
    def _test(text: str) -> bool:
        return any(p(text) for p in predicates)

    return _test


def normalize(text: str) -> str:
    return (text or "").strip().lower()


# -----------------------------
# Canned responses
# -----------------------------
GREETING_REPLY = (
    "Hello! How can I help with your documentation today? You can ask me to "
    "summarize pages, explain APIs, or point you to relevant sections."
)
THANKS_REPLY = "You're welcome! If you need anything else, just ask."
FAREWELL_REPLY = "Goodbye! I'm here whenever you need help with the docs."
IDENTITY_REPLY = (
    "I'm the {name} Assistant. I help you explore, summarize, and "
    "answer questions about your project documentation and APIs."
)
THEME_REPLY = (
    "Use the moon/sun button in the header to toggle between dark and light "
    "themes. Your choice is saved for next time."
)
ERROR_REPLY = (
    "Let's debug this together. Please share the exact error message and "
    "context (endpoint or page). Common steps: \n"
    "- Confirm request method and URL\n"
    "- Check authentication/permissions\n"
    "- Validate required fields\n"
    "- Inspect server logs if available"
)
AUTH_REPLY = (
    "Authentication tips:\n"
    "- Use a short-lived access token and refresh it securely\n"
    "- Send the token in the Authorization header (e.g., Bearer <token>)\n"
    "- For API keys, restrict by origin/IP when possible\n"
    "- Never commit secrets to source control"
)
API_REPLY = (
    "For APIs, I can help by outlining request/response shapes, example "
    "cURL/JS fetch calls, and common status codes. Tell me the endpoint or "
    "describe what you want to achieve."
)
SEARCH_REPLY = (
    "Tell me a concept and I'll point you to relevant docs sections. For "
    'example: "deployment steps", "webhook retries", or "rate limits".'
)
HELP_REPLY = (
    "Here's what I can do:\n"
    "- Answer questions about your docs and APIs\n"
    "- Summarize long pages into bullet points\n"
    "- Provide code snippets (cURL/JS)\n"
    "- Link you to relevant sections\n\n"
    "Ask something specific like: \n"
    '"How do I authenticate requests?" or "Summarize the onboarding guide."'
)


def fallback_reply(original: str) -> str:
    """Echo the user's text back verbatim with some guidance."""
    return (
        f'You said: "{original}"\n\n'
        "I can help summarize documentation, answer questions, and link you to "
        "relevant sections. Try asking something like:\n"
        '- "What does the onboarding API return?"\n'
        '- "Generate a summary of the deployment steps."'
    )


def build_rules(assistant_name: str = ASSISTANT_NAME) -> Tuple[IntentRule, ...]:
    """The stock rule table, in priority order."""
    name = re.escape(assistant_name.lower())
    return (
        IntentRule("greeting", pattern(r"^(hi|hey|hello|yo|good (morning|afternoon|evening))\b"), GREETING_REPLY),
        IntentRule("thanks", pattern(r"(thanks|thank you|thx|appreciate it)"), THANKS_REPLY),
        IntentRule("farewell", pattern(r"(bye|goodbye|see ya|see you)"), FAREWELL_REPLY),
        IntentRule(
            "identity",
            pattern(rf"(who are you|what are you|{name} assistant)"),
            IDENTITY_REPLY.format(name=assistant_name),
        ),
        IntentRule("theme", pattern(r"(dark|light).*theme", r"toggle theme"), THEME_REPLY),
        IntentRule("error", pattern(r"(error|fail(ed|ure)|exception|bug|issue|not working)"), ERROR_REPLY),
        IntentRule("auth", pattern(r"(auth|authentication|token|apikey|api key|oauth|login)"), AUTH_REPLY),
        IntentRule("api", pattern(r"(api|endpoint|rest|graphql|request|response)"), API_REPLY),
        IntentRule("search", pattern(r"(search|find|where is|docs?|documentation)"), SEARCH_REPLY),
        IntentRule(
            "help",
            any_of(pattern(r"(help|how to|examples?|sample|what can you do)"), ends_with_question),
            HELP_REPLY,
        ),
    )


DEFAULT_RULES = build_rules()


class IntentClassifier:
    """Ordered rule table with an echoing fallback.

    Parameters
    ----------
    rules : Iterable[IntentRule]
        Checked in order; the first match decides the reply.
    fallback : Callable[[str], str]
        Builds the reply when nothing matches. Receives the stripped text
        with its original casing.
    """

    def __init__(
        self,
        rules: Iterable[IntentRule] = DEFAULT_RULES,
        fallback: Callable[[str], str] = fallback_reply,
    ) -> None:
        self.rules: Tuple[IntentRule, ...] = tuple(rules)
        self.fallback = fallback

    def match(self, user_text: str) -> Optional[IntentRule]:
        q = normalize(user_text)
        for rule in self.rules:
            if rule.matches(q):
                return rule
        return None

    def classify(self, user_text: str) -> str:
        rule = self.match(user_text)
        if rule is not None:
            return rule.response
        return self.fallback((user_text or "").strip())

    def intent_of(self, user_text: str) -> str:
        rule = self.match(user_text)
        return rule.name if rule is not None else "fallback"

    def with_rule(self, rule: IntentRule, before: Optional[str] = None) -> "IntentClassifier":
        """Return a copy with ``rule`` added at the end or ahead of ``before``."""
        rules = list(self.rules)
        if before is None:
            rules.append(rule)
        else:
            names = [r.name for r in rules]
            if before not in names:
                raise KeyError(f"no rule named {before!r}")
            rules.insert(names.index(before), rule)
        return IntentClassifier(rules, self.fallback)

    @property
    def names(self) -> Sequence[str]:
        return [r.name for r in self.rules]


_default = IntentClassifier()


def classify(user_text: str) -> str:
    """Reply for ``user_text`` using the default rule table."""
    return _default.classify(user_text)
