# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection: wire repositories and services.
"""

from carecall.repositories.call_log_repository import CallLogRepository
from carecall.repositories.history_repository import HistoryRepository
from carecall.repositories.profile_repository import ProfileRepository
from carecall.repositories.schedule_repository import ScheduleRepository
from carecall.services.call_service import CallService
from carecall.services.orchestrator import CallOrchestrator
from carecall.services.profile_service import ProfileService
from carecall.services.schedule_service import ScheduleService
from carecall.services.session_manager import ConversationSessionManager
from carecall.services.voice_client import VoiceProviderClient

# ── Singleton repository instances (in-memory stores) ──
_schedule_repo = ScheduleRepository()
_profile_repo = ProfileRepository()
_history_repo = HistoryRepository()
_call_log_repo = CallLogRepository()

# ── Provider-facing components ──
_voice_client = VoiceProviderClient()
_session_manager = ConversationSessionManager(client=_voice_client)
_orchestrator = CallOrchestrator(manager=_session_manager)

# ── Service instances (with injected dependencies) ──
_schedule_service = ScheduleService(
    schedule_repo=_schedule_repo,
    profile_repo=_profile_repo,
    history_repo=_history_repo,
)
_profile_service = ProfileService(
    profile_repo=_profile_repo,
    history_repo=_history_repo,
)
_call_service = CallService(
    profile_repo=_profile_repo,
    schedule_repo=_schedule_repo,
    call_log_repo=_call_log_repo,
    orchestrator=_orchestrator,
)


# ── FastAPI dependency functions ──
def get_schedule_service() -> ScheduleService:
    return _schedule_service


def get_profile_service() -> ProfileService:
    return _profile_service


def get_call_service() -> CallService:
    return _call_service


def get_session_manager() -> ConversationSessionManager:
    return _session_manager


def get_schedule_repo() -> ScheduleRepository:
    return _schedule_repo


def get_profile_repo() -> ProfileRepository:
    return _profile_repo


def get_history_repo() -> HistoryRepository:
    return _history_repo


def get_call_log_repo() -> CallLogRepository:
    return _call_log_repo
