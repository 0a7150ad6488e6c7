from .retrieval import RetrievalQuery, RetrievalResult, RetrievedPassage

__all__ = [
    "RetrievalQuery",
    "RetrievalResult",
    "RetrievedPassage",
]
