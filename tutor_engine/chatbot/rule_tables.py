"""
Declarative rule tables for query classification.

Every axis of the classifier is an ordered table evaluated top-to-bottom.
Adding a rule means editing a table here, never the control flow in
query_understanding.py. Bump RULESET_VERSION whenever a table changes.
"""

import re
from typing import Pattern, Tuple

from ..schema.core_schema import (
    LearningApproach,
    QueryComplexity,
    SubjectType,
    UserIntent,
)

RULESET_VERSION = "2024.3"


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# Interrogatives / auxiliaries that must not open a bare assertion.
_NOT_A_QUESTION = r"(?!(?:what|who|whom|whose|when|where|which|why|how|can|could|would|should|will|do|does|did|is|are|was|were)\b)"

# ============================================================================
# SUBJECT (first match wins, in this order)
# ============================================================================

SUBJECT_KEYWORDS: Tuple[Tuple[SubjectType, Tuple[str, ...]], ...] = (
    (SubjectType.MATHEMATICS, (
        "math", "mathematics", "algebra", "geometry", "calculus", "statistics",
        "equation", "formula", "number", "solve", "fraction", "percentage",
    )),
    (SubjectType.SCIENCE, (
        # general
        "science", "scientific", "experiment", "hypothesis", "theory", "research", "observation",
        # biology
        "biology", "biological", "organism", "cell", "cellular", "gene", "genetic", "dna", "rna",
        "protein", "enzyme", "evolution", "species", "ecosystem", "photosynthesis", "respiration",
        "virus", "bacteria", "anatomy", "physiology", "organ", "tissue", "blood", "heart", "brain",
        "nervous", "immune", "reproduction",
        # chemistry
        "chemistry", "chemical", "element", "compound", "molecule", "atom", "atomic", "ion",
        "reaction", "acid", "mixture", "carbon", "oxygen", "hydrogen", "nitrogen",
        "periodic table", "catalyst", "oxidation", "organic", "inorganic", "polymer", "crystal",
        # physics
        "physics", "physical", "force", "energy", "motion", "velocity", "acceleration", "gravity",
        "mass", "momentum", "friction", "pressure", "temperature", "heat", "light", "sound",
        "wave", "frequency", "wavelength", "electricity", "magnetic", "electromagnetic",
        "radiation", "quantum", "nuclear", "relativity", "thermodynamics",
        # earth & space
        "geology", "earth", "planet", "solar system", "atmosphere", "climate", "weather", "ocean",
        "volcano", "earthquake", "mineral", "rock", "fossil", "plate tectonics", "erosion",
        "sediment", "meteorology", "astronomy", "star", "galaxy",
    )),
    (SubjectType.HISTORY, (
        "history", "historical", "war", "revolution", "century", "ancient", "medieval",
        "empire", "civilization", "timeline",
    )),
    (SubjectType.LITERATURE, (
        "literature", "poem", "poetry", "novel", "story", "author", "character", "plot",
        "theme", "metaphor", "symbolism", "genre",
    )),
    (SubjectType.LANGUAGE, (
        "grammar", "syntax", "vocabulary", "language", "pronunciation", "spelling",
        "conjugation", "tense", "noun", "verb", "adjective",
    )),
    (SubjectType.PHILOSOPHY, (
        "philosophy", "ethics", "morality", "logic", "reasoning", "argument", "belief",
        "truth", "wisdom", "existence",
    )),
    (SubjectType.ARTS, (
        "art", "painting", "sculpture", "music", "composition", "artist", "aesthetic",
    )),
    (SubjectType.TECHNOLOGY, (
        "technology", "computer", "programming", "code", "software", "algorithm", "digital",
        "internet", "artificial intelligence",
    )),
    (SubjectType.SOCIAL_STUDIES, (
        "society", "culture", "government", "politics", "economics", "social", "community",
        "democracy", "law", "rights",
    )),
)

# Operator symbols only count as mathematics between operands ("2+2", "x = 3").
MATH_SYMBOL_PATTERN: Pattern[str] = _rx(r"[\dx)]\s*[+\-*/=^]\s*[\d(x?]")

# ============================================================================
# COMPLEXITY
# ============================================================================

ADVANCED_INDICATORS: Tuple[str, ...] = (
    "analyze", "evaluate", "compare and contrast", "synthesize", "critique", "argue",
    "prove", "derive",
)
COMPLEX_VOCABULARY: Tuple[str, ...] = (
    "relationship", "implications", "consequences", "significance", "methodology",
    "framework", "paradigm",
)
BASIC_INDICATORS: Tuple[str, ...] = (
    "what is", "define", "meaning", "who is", "when did", "where is",
)
BASIC_MAX_WORDS = 5

# ============================================================================
# INTENT (precedence: confirmatory > factual > procedural > analytical > creative)
# ============================================================================

# Shared with the response-length tier: anything that matches here is both
# confirmatory and simple.
CONFIRMATION_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"^true or false"),
    _rx(r"^(correct|right|wrong|yes|no)\??$"),
    _rx(r"^is (this|that|it) (true|false|correct|right|wrong)"),
    _rx(r"^\w+.*\?\s*(true|false)"),
    _rx(r"^\d+\s*[+\-*/]\s*\d+\s*=\s*\d+$"),
    _rx(r"^(the\s+)?\w+\s+(sets|rises|moves|rotates|orbits|boils|freezes|melts)\s+"),
    _rx(rf"^{_NOT_A_QUESTION}(the\s+)?\w+\s+(equals|makes|causes|creates)\s+"),
    _rx(rf"^{_NOT_A_QUESTION}(the\s+\w+|\w+(\s+\w+)?)\s+(is|are|was|were|will be|can be)\s+\w+"),
    _rx(r"^(plants|animals|humans|cells)\s+(need|require|produce|make)\b"),
    _rx(rf"^{_NOT_A_QUESTION}\w+\s+(invented|discovered|wrote|created|founded)\s+"),
    _rx(r"^(world war|the war|the revolution)\s+(started|ended|began)\s+in\s+\d+"),
)

FACTUAL_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"^(who|when|where|which) (is|was|were|did|wrote|created|invented|discovered|founded)"),
    _rx(r"^what is( the)? (capital|currency|population|date|name|meaning|definition)"),
    _rx(r"^define \w+$"),
    _rx(r"^what (is|are|was|were) [^?]*\?$"),
    _rx(r"^when (did|was|were)"),
    _rx(r"^where (is|was|were)"),
)

INTENT_PHRASES: Tuple[Tuple[UserIntent, Tuple[str, ...]], ...] = (
    (UserIntent.PROCEDURAL, (
        "how to", "how do i", "how can i", "steps to", "process of", "method for", "procedure",
        "how does", "how is", "show me how", "teach me how", "explain how",
    )),
    (UserIntent.ANALYTICAL, (
        "analyze", "analyse", "compare", "contrast", "evaluate", "assess", "critique", "examine",
        "why is", "why does", "why do", "explain why", "reasoning behind", "cause of",
    )),
    (UserIntent.CREATIVE, (
        "brainstorm", "ideas for", "creative", "imagine", "suggest", "possibilities",
        "come up with", "think of", "generate", "invent", "design",
    )),
)

# ============================================================================
# RESPONSE-LENGTH TIER
# ============================================================================

EXPLICIT_SIMPLE_CUES: Tuple[str, ...] = (
    "quick", "quickly", "short", "brief", "briefly", "just tell me", "fast", "yes", "no",
)
EXPLICIT_LONGER_CUES: Tuple[str, ...] = (
    "step-by-step", "step by step", "in detail", "detailed", "comprehensive", "thorough",
    "explain fully", "walk me through", "breakdown", "analyze",
    # quiz requests need room for four options and an answer line
    "quiz", "test me", "multiple choice", "practice question",
)

DIRECT_FACTUAL_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"^who (wrote|is|was|created|invented|discovered)"),
    _rx(r"^what (is the|was the) (capital|currency|population)"),
    _rx(r"^when (did|was|were)"),
    _rx(r"^where (is|was|are|were)"),
    _rx(r"^define \w+$"),
    _rx(r"^what is [a-z]+\s?\?$"),
)

OPEN_CONCEPTUAL_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"^what is (gravity|photosynthesis|democracy|evolution|quantum)"),
    _rx(r"^what (causes|makes|determines)"),
    _rx(r"^(explain|describe) \w+$"),
    _rx(r"^what.+(difference|relationship)"),
)

PROCEDURAL_ANALYTICAL_CUES: Tuple[str, ...] = (
    "how to", "how do i", "how does", "why does", "analyze", "compare", "evaluate",
    "process", "method", "procedure", "steps", "causes and effects",
)

MATH_EXPRESSION_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"^\d+\s*[+\-*/]\s*\d+"),
    _rx(r"^true or false.*\d+.*\d+"),
)

SIMPLE_MATH_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"^\d+\s*[+\-*/]\s*\d+$"),
    _rx(r"^what\s+is\s+\d+\s*[+\-*/]\s*\d+\s*\??$"),
    _rx(r"^\d+\s*[+\-*/]\s*\d+\s*=\s*\?$"),
)

SHORT_QUERY_MAX_WORDS = 3
SIMPLE_FALLBACK_MAX_WORDS = 5

# ============================================================================
# LEARNING APPROACH (first match wins)
# ============================================================================

APPROACH_CUES: Tuple[Tuple[LearningApproach, Tuple[str, ...]], ...] = (
    (LearningApproach.SOCRATIC, ("why", "how", "what if", "suppose")),
    (LearningApproach.EXAMPLE_BASED, ("example", "examples", "instance", "case", "illustration")),
    (LearningApproach.ANALOGICAL, ("like", "similar to", "compare to", "analogous")),
    (LearningApproach.SCAFFOLDED, ("step", "steps", "process", "procedure", "method", "sequence")),
)

# ============================================================================
# KEYWORDS / QUESTION TYPE / REQUIREMENTS
# ============================================================================

KEYWORD_STOP_WORDS = frozenset({
    "what", "how", "why", "when", "where", "who", "which", "that", "this", "with", "from",
    "they", "have", "will", "been", "said", "each", "more", "than", "what's", "does",
    "about", "there", "their", "would", "could", "should",
})
MAX_KEYWORDS = 5
KEYWORD_MIN_LENGTH = 4

QUESTION_TYPES: Tuple[Tuple[str, str], ...] = (
    ("what", "Definition/Information"),
    ("how", "Process/Method"),
    ("why", "Explanation/Reasoning"),
    ("when", "Temporal"),
    ("where", "Location/Context"),
    ("who", "Person/Entity"),
)

EXAMPLE_INDICATORS: Tuple[str, ...] = (
    "example", "instance", "case", "illustration", "demonstrate", "show me", "what is", "how to",
)
STEP_INDICATORS: Tuple[str, ...] = (
    "step", "steps", "process", "procedure", "method", "how to", "walk me through", "guide",
)

# ============================================================================
# WEB-SEARCH NEED
# ============================================================================

SEARCH_INDICATORS: Tuple[Pattern[str], ...] = tuple(_rx(p) for p in (
    r"\bwho is\b", r"\bwhat is the name\b", r"\bwhere is\b", r"\bwhen did\b", r"\bwhen was\b",
    r"\bcurrent\b", r"\blatest\b", r"\btoday\b", r"\bnow\b", r"\brecent\b",
    r"\bthis year\b", r"\bthis month\b",
    r"\buniversity\b", r"\bcollege\b", r"\bschool\b", r"\bprofessor\b", r"\binstructor\b",
    r"\bcourse\b",
    r"\bweather\b", r"\bnews\b", r"\bstock\b", r"\bprice\b",
    r"\bworks for\b", r"\bemployed by\b", r"\blocated at\b",
))

CONVERSATIONAL_INDICATORS: Tuple[Pattern[str], ...] = tuple(_rx(p) for p in (
    r"^(can you |could you |will you |would you )(help|explain|teach|show)",
    r"^how (do|does|can|to)\b",
    r"\b(practice|quiz|test|example|problem)s?\b",
    r"\b(understand|confused|clarify)\b",
))
