from .knowledge_record_models import KnowledgeRecordModel

__all__ = [
    "KnowledgeRecordModel",
]
