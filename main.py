import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

import database
import uploads
from auth import authenticate, create_access_token, get_current_user, user_to_public
from database import DatabaseUnavailable, create_document, get_documents
from entities import ENTITIES, EntitySpec
from schemas import LoginBody

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="My Dev Archive API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(uploads.PUBLIC_PREFIX, StaticFiles(directory=uploads.UPLOAD_DIR, check_dir=False), name="uploads")

# Server-owned fields a client can never set
SERVER_FIELDS = {"_id", "id", "created_at", "updated_at", "createdAt", "updatedAt", "dataType"}
FIELD_ALIASES = {"reference_id": "referenceId"}


@app.exception_handler(DatabaseUnavailable)
async def database_unavailable_handler(request: Request, exc: DatabaseUnavailable):
    logger.error("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database not configured"})


# Utilities
def to_oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID")


def as_serializable(doc: Dict[str, Any]):
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id"):
        d["id"] = str(d.pop("_id"))
    # Convert datetimes to isoformat
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            d[k] = v.isoformat()
    return d


def validation_detail(exc: ValidationError) -> List[Dict[str, Any]]:
    return [{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in exc.errors()]


async def read_submission(request: Request) -> Tuple[Dict[str, Any], Optional[Any]]:
    """Split a create/update request into plain fields and the optional image file.

    Multipart and urlencoded forms are what the admin screens send; a JSON body
    is accepted too. Repeated form keys (e.g. several ``skills``) become lists.
    """
    content_type = request.headers.get("content-type", "")
    image = None
    fields: Dict[str, Any] = {}

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON body")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")
        fields = dict(body)
    else:
        form = await request.form()
        for key, value in form.multi_items():
            if not isinstance(value, str):
                # An empty file input still arrives as a part without a filename
                if key == "image" and value.filename:
                    image = value
                continue
            if key in fields:
                prev = fields[key]
                fields[key] = prev + [value] if isinstance(prev, list) else [prev, value]
            else:
                fields[key] = value

    for alias, name in FIELD_ALIASES.items():
        if alias in fields:
            fields[name] = fields.pop(alias)
    for key in SERVER_FIELDS:
        fields.pop(key, None)
    return fields, image


@app.get("/")
def root():
    return {"message": "My Dev Archive API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    db = database.db
    if db is not None:
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()[:20]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# Generic CRUD helpers

def list_items(spec: EntitySpec) -> List[Dict[str, Any]]:
    return [as_serializable(d) for d in get_documents(spec.collection)]


def create_item(spec: EntitySpec, fields: Dict[str, Any], image) -> Dict[str, Any]:
    if spec.image_required and image is None and not fields.get("image"):
        raise HTTPException(status_code=422, detail=[{"loc": ["body", "image"], "msg": "Image is required", "type": "missing"}])

    stored = uploads.save_upload(image) if image is not None else None
    if stored:
        fields["image"] = stored
    try:
        model = spec.model.model_validate(fields)
    except ValidationError as e:
        uploads.discard_upload(stored)
        raise HTTPException(status_code=422, detail=validation_detail(e))

    new_id = create_document(spec.collection, model)
    doc = database.get_db()[spec.collection].find_one({"_id": ObjectId(new_id)})
    logger.info("Created %s %s", spec.data_type, new_id)
    return as_serializable(doc)


def update_item(spec: EntitySpec, id_str: str, fields: Dict[str, Any], image) -> Dict[str, Any]:
    """Merge the submitted fields onto the stored document.

    Fields that are not submitted keep their stored value; an omitted image
    leaves the existing image untouched. The merged document must still be valid.
    """
    oid = to_oid(id_str)
    coll = database.get_db()[spec.collection]
    existing = coll.find_one({"_id": oid})
    if existing is None:
        raise HTTPException(status_code=404, detail="Not found")

    stored = uploads.save_upload(image) if image is not None else None
    merged = {k: v for k, v in existing.items() if k not in SERVER_FIELDS}
    merged.update(fields)
    if stored:
        merged["image"] = stored
    try:
        model = spec.model.model_validate(merged)
    except ValidationError as e:
        uploads.discard_upload(stored)
        raise HTTPException(status_code=422, detail=validation_detail(e))

    doc = model.model_dump(by_alias=True)
    res = coll.update_one({"_id": oid}, {"$set": {**doc, "updated_at": datetime.now(timezone.utc)}})
    if res.matched_count == 0:
        uploads.discard_upload(stored)
        raise HTTPException(status_code=404, detail="Not found")
    if existing.get("image") != doc.get("image"):
        # The replaced image file is no longer referenced
        uploads.discard_upload(existing.get("image"))
    logger.info("Updated %s %s", spec.data_type, id_str)
    return as_serializable(coll.find_one({"_id": oid}))


def delete_item(spec: EntitySpec, id_str: str) -> Dict[str, Any]:
    removed = database.get_db()[spec.collection].find_one_and_delete({"_id": to_oid(id_str)})
    if removed is None:
        raise HTTPException(status_code=404, detail="Not found")
    uploads.discard_upload(removed.get("image"))
    logger.info("Deleted %s %s", spec.data_type, id_str)
    return {"message": f"{spec.label} Deleted", "deleted": True}


def register_entity(spec: EntitySpec) -> None:
    """Public GET plus authenticated POST/PUT/DELETE for one entity type."""
    slug = spec.data_type.replace("-", "_")

    @app.get(spec.path, name=f"list_{slug}")
    def list_entity():
        return list_items(spec)

    @app.post(spec.path, status_code=201, name=f"create_{slug}")
    async def create_entity(request: Request, current=Depends(get_current_user)):
        fields, image = await read_submission(request)
        return create_item(spec, fields, image)

    @app.put(spec.path + "/{id}", name=f"update_{slug}")
    async def update_entity(id: str, request: Request, current=Depends(get_current_user)):
        fields, image = await read_submission(request)
        return update_item(spec, id, fields, image)

    @app.delete(spec.path + "/{id}", name=f"delete_{slug}")
    def delete_entity(id: str, current=Depends(get_current_user)):
        return delete_item(spec, id)


for _spec in ENTITIES:
    register_entity(_spec)


# Auth (login only, no public signup)
@app.post("/users/login")
def login(body: LoginBody):
    user = authenticate(body.email, body.password)
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid credentials")

    token = create_access_token({"id": str(user["_id"])})
    public = user_to_public(user)
    return {"id": public["id"], "name": public.get("name"), "email": public.get("email"), "token": token}


@app.get("/users/me")
def me(current=Depends(get_current_user)):
    return user_to_public(current)


# Collection counts for the overview cards
@app.get("/stats")
def get_stats():
    db = database.get_db()
    counts = {
        f"total_{spec.data_type.replace('-', '_')}s": db[spec.collection].count_documents({})
        for spec in ENTITIES
    }
    counts["total_items"] = sum(counts.values())
    return counts


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
