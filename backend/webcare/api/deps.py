from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from webcare.core.security import decode_access_token
from webcare.db.session import get_db
from webcare.models.client import Client
from webcare.models.user import User
from webcare.models.website import Website
from webcare.services.site_sync import record_connection
from webcare.services.wp_remote_manager import WPRemoteManagerClient
from webcare.services.wrm_errors import RemoteManagerError, SiteConfigurationError

security = HTTPBearer(auto_error=False)

ClientFactory = Callable[[Website], WPRemoteManagerClient]


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    subject = decode_access_token(credentials.credentials) if credentials else None
    user = db.query(User).filter(User.id == int(subject)).first() if subject and subject.isdigit() else None
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_owned_client(client_id: int, db: Session, user: User) -> Client:
    client = db.query(Client).filter(Client.id == client_id, Client.user_id == user.id).first()
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


def get_owned_website(
    website_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Website:
    website = (
        db.query(Website)
        .join(Client)
        .filter(Website.id == website_id, Client.user_id == current_user.id)
        .first()
    )
    if not website:
        raise HTTPException(status_code=404, detail="Website not found")
    return website


def get_client_factory() -> ClientFactory:
    return WPRemoteManagerClient.from_website


def remote_error(error: RemoteManagerError) -> HTTPException:
    return HTTPException(status_code=error.http_status, detail=error.to_dict())


def build_remote_client(db: Session, website: Website, factory: ClientFactory) -> WPRemoteManagerClient:
    """Build the site's client, answering 400 when the stored URL or API key is unusable."""
    try:
        return factory(website)
    except SiteConfigurationError as e:
        record_connection(db, website, e)
        raise remote_error(e)
