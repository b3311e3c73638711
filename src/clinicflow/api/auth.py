from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.api.deps import AUTHENTICATED
from clinicflow.api.schemas import (
    ForgotPasswordIn,
    LoginIn,
    MessageOut,
    ProfileOut,
    RegisterDoctorIn,
    RegisterPatientIn,
    ResetPasswordIn,
    TokenOut,
    UserOut,
    ValidateTokenOut,
)
from clinicflow.db import get_session
from clinicflow.models import User
from clinicflow.models.accounts import ROLE_PATIENT_NOCLINIC
from clinicflow.security import get_current_user
from clinicflow.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_out(user: User, token: str) -> TokenOut:
    return TokenOut(
        token=token,
        user=UserOut.model_validate(user),
        needs_clinic=user.role == ROLE_PATIENT_NOCLINIC,
    )


@router.post("/register/doctor", response_model=TokenOut, status_code=201)
async def register_doctor(payload: RegisterDoctorIn, session: AsyncSession = Depends(get_session)):
    user, token = await auth_service.register_doctor(
        session, name=payload.name, email=payload.email, password=payload.password
    )
    return _token_out(user, token)


@router.post("/register/patient", response_model=TokenOut, status_code=201)
async def register_patient(payload: RegisterPatientIn, session: AsyncSession = Depends(get_session)):
    user, token = await auth_service.register_patient(
        session,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        phone=payload.phone,
    )
    return _token_out(user, token)


@router.post("/login", response_model=TokenOut)
async def login(payload: LoginIn, session: AsyncSession = Depends(get_session)):
    user, token = await auth_service.login(session, email=payload.email, password=payload.password)
    return _token_out(user, token)


@router.get("/me", response_model=ProfileOut, dependencies=AUTHENTICATED)
async def me(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await auth_service.profile(session, user)


@router.post("/forgot-password", response_model=MessageOut)
async def forgot_password(payload: ForgotPasswordIn, session: AsyncSession = Depends(get_session)):
    await auth_service.forgot_password(session, payload.email)
    return MessageOut(message="If an account exists for this email, a reset link has been sent.")


@router.get("/reset-password/validate", response_model=ValidateTokenOut)
async def validate_reset_token(token: str = "", session: AsyncSession = Depends(get_session)):
    return ValidateTokenOut(valid=await auth_service.validate_reset_token(session, token))


@router.post("/reset-password", response_model=MessageOut)
async def reset_password(payload: ResetPasswordIn, session: AsyncSession = Depends(get_session)):
    await auth_service.reset_password(session, token=payload.token, password=payload.password)
    return MessageOut(message="Password updated")
