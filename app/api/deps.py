# app/api/deps.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.notifications import Notifier, get_notifier
from app.db.session import get_db
from app.schemas.token import TokenPayload
from app.services.payment.provider_factory import get_payment_provider
from app.services.payment.provider_interface import PaymentProviderInterface
from app.services.workshops.invitation_service import InvitationService
from app.services.workshops.onboarding_service import OnboardingService
from app.services.workshops.refund_service import RefundService
from app.services.workshops.registration_service import RegistrationService
from app.services.workshops.workshop_service import WorkshopService

# Tokens are issued by the auth service; tokenUrl is only for the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        raise credentials_exception

    return token_data


def require_coordinator(
    current_user: TokenPayload = Depends(get_current_user),
) -> TokenPayload:
    if not current_user.is_coordinator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Coordinator access required",
        )
    return current_user


def get_provider() -> PaymentProviderInterface:
    return get_payment_provider()


def get_notifications() -> Notifier:
    return get_notifier()


def get_workshop_service(
    db: Session = Depends(get_db),
    provider: PaymentProviderInterface = Depends(get_provider),
    notifier: Notifier = Depends(get_notifications),
) -> WorkshopService:
    return WorkshopService(db, provider=provider, notifier=notifier)


def get_invitation_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifications),
) -> InvitationService:
    return InvitationService(db, notifier=notifier)


def get_registration_service(
    db: Session = Depends(get_db),
    provider: PaymentProviderInterface = Depends(get_provider),
    notifier: Notifier = Depends(get_notifications),
) -> RegistrationService:
    return RegistrationService(db, provider=provider, notifier=notifier)


def get_refund_service(
    db: Session = Depends(get_db),
    provider: PaymentProviderInterface = Depends(get_provider),
    notifier: Notifier = Depends(get_notifications),
) -> RefundService:
    return RefundService(db, provider=provider, notifier=notifier)


def get_onboarding_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifications),
) -> OnboardingService:
    return OnboardingService(db, notifier=notifier)
