"""
Collection and document paths in the document store.

Paths are slash separated. Collection paths have an odd number of segments,
document paths an even number; the first segment is the root collection.
"""

USERS_COLLECTION = "users"
TEACHERS_COLLECTION = "teachers"
COORDINATORS_COLLECTION = "coordinators"
STUDENT_DATA_ROOT_COLLECTION = "student_data_by_class"
PROFILES_SUBCOLLECTION_NAME = "profiles"
TEACHER_APPRAISAL_REQUESTS_COLLECTION = "teacher_appraisal_requests"


def _require(**ids: str) -> None:
    missing = [name for name, value in ids.items() if not value]
    if missing:
        raise ValueError(f"{', '.join(missing)} required to build document path")


def user_doc_path(account_id: str) -> str:
    _require(account_id=account_id)
    return f"{USERS_COLLECTION}/{account_id}"


def teacher_doc_path(account_id: str) -> str:
    _require(account_id=account_id)
    return f"{TEACHERS_COLLECTION}/{account_id}"


def coordinator_doc_path(account_id: str) -> str:
    _require(account_id=account_id)
    return f"{COORDINATORS_COLLECTION}/{account_id}"


def class_doc_path(class_id: str) -> str:
    _require(class_id=class_id)
    return f"{STUDENT_DATA_ROOT_COLLECTION}/{class_id}"


def student_profiles_collection_path(class_id: str) -> str:
    _require(class_id=class_id)
    return f"{STUDENT_DATA_ROOT_COLLECTION}/{class_id}/{PROFILES_SUBCOLLECTION_NAME}"


def student_doc_path(class_id: str, student_profile_id: str) -> str:
    _require(class_id=class_id, student_profile_id=student_profile_id)
    return f"{student_profiles_collection_path(class_id)}/{student_profile_id}"


def appraisal_request_doc_path(request_id: str) -> str:
    _require(request_id=request_id)
    return f"{TEACHER_APPRAISAL_REQUESTS_COLLECTION}/{request_id}"


def split_document_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    segments = path.strip("/").split("/")
    if len(segments) < 2 or len(segments) % 2:
        raise ValueError(f"not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def root_of(path: str) -> str:
    """Root collection of any collection or document path."""
    return path.strip("/").split("/", 1)[0]
