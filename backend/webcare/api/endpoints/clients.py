from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from webcare.api import deps
from webcare.models.client import Client
from webcare.models.user import User
from webcare.schemas import ClientCreate, ClientResponse, ClientUpdate

router = APIRouter()


@router.get("/", response_model=List[ClientResponse])
def list_clients(db: Session = Depends(deps.get_db), current_user: User = Depends(deps.get_current_user)):
    return db.query(Client).filter(Client.user_id == current_user.id).order_by(Client.name).all()


@router.post("/", response_model=ClientResponse, status_code=201)
def create_client(
    client_in: ClientCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    client = Client(user_id=current_user.id, **client_in.model_dump())
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(client_id: int, db: Session = Depends(deps.get_db), current_user: User = Depends(deps.get_current_user)):
    return deps.get_owned_client(client_id, db, current_user)


@router.put("/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: int,
    client_in: ClientUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    client = deps.get_owned_client(client_id, db, current_user)
    for field, value in client_in.model_dump(exclude_unset=True).items():
        setattr(client, field, value)
    db.commit()
    db.refresh(client)
    return client


@router.delete("/{client_id}")
def delete_client(client_id: int, db: Session = Depends(deps.get_db), current_user: User = Depends(deps.get_current_user)):
    client = deps.get_owned_client(client_id, db, current_user)
    db.delete(client)
    db.commit()
    return {"message": "Client deleted"}
