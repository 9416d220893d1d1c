"""
Static relationship table between cached entity types.
"""

from typing import Dict, List, Mapping, Optional, Sequence


MOVIES = "movies"
DIRECTORS = "directors"

# Movie payloads embed director summaries, so the two namespaces are
# invalidated together in both directions.
DEFAULT_RELATIONSHIPS: Dict[str, Sequence[str]] = {
    MOVIES: (DIRECTORS,),
    DIRECTORS: (MOVIES,),
}


class EntityRelationships:
    """Which entity namespaces must be dropped alongside a given one."""

    def __init__(self, relationships: Optional[Mapping[str, Sequence[str]]] = None):
        self._relationships = dict(DEFAULT_RELATIONSHIPS if relationships is None else relationships)

    @property
    def entity_types(self) -> List[str]:
        known = list(self._relationships)
        for related in self._relationships.values():
            known.extend(entity for entity in related if entity not in known)
        return known

    def related(self, entity_type: str) -> List[str]:
        return [entity for entity in self._relationships.get(entity_type, ()) if entity != entity_type]

    def affected(self, entity_type: str) -> List[str]:
        """The entity itself first, then each related type once."""
        affected = [entity_type]
        for entity in self.related(entity_type):
            if entity not in affected:
                affected.append(entity)
        return affected
