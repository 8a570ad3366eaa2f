from enum import Enum
from typing import Dict

class ReasonCode(Enum):
    NOTHING_TO_DO = "NOTHING_TO_DO"
    SYNC_IN_PROGRESS = "SYNC_IN_PROGRESS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    UNKNOWN_STATUS = "UNKNOWN_STATUS"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
    BATCH_CREDENTIAL_MISSING = "BATCH_CREDENTIAL_MISSING"
    STORE_MISSING = "STORE_MISSING"
    UNIT_CODE_MISSING = "UNIT_CODE_MISSING"
    STALE_RUN = "STALE_RUN"
    NOT_MANUAL_ORDER = "NOT_MANUAL_ORDER"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    OTHER = "OTHER"

def explain_reason(code: ReasonCode, context: Dict | None = None) -> str:
    context = context or {}
    templates = {
        ReasonCode.NOTHING_TO_DO: "변경할 내용이 없습니다: {detail}",
        ReasonCode.SYNC_IN_PROGRESS: "이미 동기화가 진행 중입니다.",
        ReasonCode.INVALID_TRANSITION: "'{current}' 상태에서 '{target}' 상태로 변경할 수 없습니다.",
        ReasonCode.UNKNOWN_STATUS: "알 수 없는 관리상태입니다: {target}",
        ReasonCode.UPSTREAM_UNAVAILABLE: "아임웹 API를 사용할 수 없습니다: {detail}",
        ReasonCode.CREDENTIAL_MISSING: "인증 토큰을 찾을 수 없습니다: {site_code}",
        ReasonCode.BATCH_CREDENTIAL_MISSING: "배치용 토큰이 없습니다. OAuth 인증을 먼저 완료해주세요.",
        ReasonCode.STORE_MISSING: "스토어 정보를 찾을 수 없습니다: {site_code}",
        ReasonCode.UNIT_CODE_MISSING: "UnitCode가 설정되지 않았습니다.",
        ReasonCode.STALE_RUN: "{minutes}분 이상 응답이 없어 실패 처리되었습니다.",
        ReasonCode.NOT_MANUAL_ORDER: "수동 추가 주문만 삭제할 수 있습니다.",
        ReasonCode.ORDER_NOT_FOUND: "주문을 찾을 수 없습니다: {order_id}",
        ReasonCode.OTHER: "{detail}",
    }
    template = templates.get(code, templates[ReasonCode.OTHER])
    return template.format(**{**context, "detail": context.get("detail", "")})
