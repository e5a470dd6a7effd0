"""
Query Classifier - maps a user utterance to an intent tag

Rules are evaluated in order against the lower-cased utterance and the first
match wins. Patterns are plain substring alternations, so "do" also matches
inside "don't" and "visit" is claimed by the destination rule before the
attractions rule ever sees it. Rule order is part of the contract.
"""

import re
from enum import Enum
from typing import List, Pattern, Tuple


class QueryType(str, Enum):
    """Intent tags"""

    DESTINATION_RECOMMENDATION = "destination_recommendation"
    PACKING = "packing"
    ATTRACTIONS = "attractions"
    WEATHER = "weather"
    BUDGET = "budget"
    FOOD = "food"
    GENERAL = "general"


CLASSIFICATION_RULES: List[Tuple[QueryType, Pattern[str]]] = [
    (QueryType.DESTINATION_RECOMMENDATION,
     re.compile(r"where|destination|recommend|suggest|place|country|city|visit")),
    (QueryType.PACKING,
     re.compile(r"pack|bring|luggage|suitcase|clothes|clothing|what to wear")),
    (QueryType.ATTRACTIONS,
     re.compile(r"do|see|activity|activities|attraction|things|visit|experience")),
    (QueryType.WEATHER,
     re.compile(r"weather|climate|temperature|rain|season")),
    (QueryType.BUDGET,
     re.compile(r"budget|cost|price|expensive|cheap|afford")),
    (QueryType.FOOD,
     re.compile(r"food|restaurant|eat|cuisine|drink")),
]


def classify_query(query: str) -> QueryType:
    """Return the intent tag of the first matching rule, GENERAL otherwise"""
    lower_query = query.lower()
    for query_type, pattern in CLASSIFICATION_RULES:
        if pattern.search(lower_query):
            return query_type
    return QueryType.GENERAL
