import logging
import re
from typing import Any, Dict, List, Optional

from database import TEXT_FIELDS

logger = logging.getLogger(__name__)

# Queries this short skip the text index and go straight to substring matching
SHORT_QUERY_LENGTH = 3


class SearchResolver:
    """Resolve free-text blog search.

    Empty queries list every blog. Longer queries try the ranked text index
    first and fall back to a case-insensitive substring match over title,
    shortDescription and tags when it finds nothing.
    """

    def __init__(self, store, *, raw_patterns: bool = False):
        self.store = store
        self.raw_patterns = raw_patterns

    def search(self, query: Optional[str] = None) -> List[Dict[str, Any]]:
        term = (query or "").strip()
        if not term:
            return self.store.all_blogs()

        if len(term) > SHORT_QUERY_LENGTH:
            ranked = self.store.text_search(term)
            if ranked:
                return ranked
            logger.debug("No ranked matches for %r, falling back to substring search", term)

        return self.store.pattern_search(self.pattern_for(term), TEXT_FIELDS)

    def pattern_for(self, term: str) -> str:
        if self.raw_patterns:
            return term
        return re.escape(term)
