"""
Pydantic schemas for API requests
"""

from pydantic import BaseModel, Field, StrictInt

from ..onboarding import AccountCandidate


# Account schemas
class CreateAccountRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    password: str

    def to_candidate(self) -> AccountCandidate:
        return AccountCandidate(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone=self.phone,
            password=self.password
        )


# Auth schemas
class LoginRequest(BaseModel):
    email: str
    password: str


# Money movement schemas
class WithdrawRequest(BaseModel):
    card_number: str
    amount: StrictInt = Field(..., description="Whole units moved from balance to card balance")


class DepositRequest(BaseModel):
    card_number: str
    month: str = Field(..., description="Card expiration month, MM")
    year: str = Field(..., description="Card expiration year, YYYY")
    cvv: str
    amount: StrictInt = Field(..., description="Whole units moved from card balance to balance")


class SendMoneyRequest(BaseModel):
    account_number: str = Field(..., description="Recipient's 9-digit account number")
    amount: StrictInt = Field(..., description="Whole units sent to the recipient")
