from bitforge.app.controller import AlertModal, BuildController, ConfirmModal
from bitforge.app.log_buffer import LogBuffer

__all__ = ["BuildController", "AlertModal", "ConfirmModal", "LogBuffer"]
