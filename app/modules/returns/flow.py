"""
Three-step return screen as an explicit state object.

The client holds a ReturnFlowState and sends it back with each action; the
transition function is pure so the same rules apply on either side.
"""

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class FlowStep(str, Enum):
    SELECT_CUSTOMER = "select_customer"
    SELECT_INVOICE = "select_invoice"
    CONFIGURE_RETURN = "configure_return"


class FlowActionType(str, Enum):
    SELECT_CUSTOMER = "select_customer"
    SELECT_INVOICE = "select_invoice"
    BACK = "back"
    RESET = "reset"


class ReturnFlowState(BaseModel):
    step: FlowStep = FlowStep.SELECT_CUSTOMER
    customer_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None


class FlowAction(BaseModel):
    type: FlowActionType
    customer_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None


class InvalidTransition(ValueError):
    pass


def transition(state: ReturnFlowState, action: FlowAction) -> ReturnFlowState:
    """
    Next state for an action.

    Selecting moves forward one step only; going back discards whatever the
    step being left had selected.
    """
    if action.type == FlowActionType.RESET:
        return ReturnFlowState()

    if action.type == FlowActionType.SELECT_CUSTOMER:
        if state.step != FlowStep.SELECT_CUSTOMER:
            raise InvalidTransition("A customer can only be selected on the first step")
        if action.customer_id is None:
            raise InvalidTransition("Please select a customer")
        return ReturnFlowState(step=FlowStep.SELECT_INVOICE, customer_id=action.customer_id)

    if action.type == FlowActionType.SELECT_INVOICE:
        if state.step != FlowStep.SELECT_INVOICE:
            raise InvalidTransition("An invoice can only be selected after choosing a customer")
        if action.invoice_id is None:
            raise InvalidTransition("Please select an invoice")
        return ReturnFlowState(
            step=FlowStep.CONFIGURE_RETURN,
            customer_id=state.customer_id,
            invoice_id=action.invoice_id
        )

    # Back
    if state.step == FlowStep.CONFIGURE_RETURN:
        return ReturnFlowState(step=FlowStep.SELECT_INVOICE, customer_id=state.customer_id)
    if state.step == FlowStep.SELECT_INVOICE:
        return ReturnFlowState()
    raise InvalidTransition("Already on the first step")
