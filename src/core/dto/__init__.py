from src.core.dto.media import MediaReference, SourceKind
from src.core.dto.lecture import BatchDTO, LectureDTO, LiveLectureDTO, SubjectDTO

__all__ = [
    # Media
    "MediaReference",
    "SourceKind",

    # Catalog
    "BatchDTO",
    "SubjectDTO",
    "LectureDTO",
    "LiveLectureDTO",
]
