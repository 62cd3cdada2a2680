import os
import io
import json
import logging
from typing import List, Optional, Dict, Any

import qrcode
from fastapi import FastAPI, HTTPException, UploadFile, File, Depends, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError
from bson import ObjectId
from pymongo import ReturnDocument

import database
from database import get_db, create_document, to_object_id, serialize, utcnow
from schemas import Form as FormSchema, Submission as SubmissionSchema, Question, Answer, parse_answer_value
from access import can_list_responses, can_read_response, owner_scope
from editing import EditOperation, apply_edits
from reconcile import load_questions, reconcile, find_question

# Google APIs
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

# Firebase Admin for token verification (Auth)
import firebase_admin
from firebase_admin import auth as fb_auth, credentials as fb_credentials, exceptions as fb_exceptions

# --- Config ---
SCOPES = ["https://www.googleapis.com/auth/drive"]
DRIVE_FOLDER_ID = os.getenv("DRIVE_FOLDER_ID")  # Folder to store uploaded images
SERVICE_ACCOUNT_JSON = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON")  # JSON string or path
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
RECENT_RESPONSES_LIMIT = 5
ALL_RESPONSES_LIMIT = 3

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Firebase Admin if credentials provided
if not firebase_admin._apps:
    fb_creds_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    try:
        if fb_creds_json:
            cred = fb_credentials.Certificate(json.loads(fb_creds_json))
            firebase_admin.initialize_app(cred)
    except (ValueError, IOError) as e:
        # endpoints that need auth will answer 401 until this is fixed
        logger.error("Firebase Admin initialization failed: %s", e)

app = FastAPI(title="Form Builder API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Helpers ---

def get_drive_service():
    """Build the Drive service from service account credentials."""
    if not SERVICE_ACCOUNT_JSON:
        raise HTTPException(status_code=500, detail="GOOGLE_SERVICE_ACCOUNT_JSON not set")
    try:
        # Allow passing either full JSON string or a file path
        if SERVICE_ACCOUNT_JSON.strip().startswith("{"):
            info = json.loads(SERVICE_ACCOUNT_JSON)
            creds = Credentials.from_service_account_info(info, scopes=SCOPES)
        else:
            creds = Credentials.from_service_account_file(SERVICE_ACCOUNT_JSON, scopes=SCOPES)
    except (ValueError, OSError) as e:
        raise HTTPException(status_code=500, detail=f"Invalid Google service account credentials: {e}")

    try:
        return build("drive", "v3", credentials=creds)
    except Exception as e:
        logger.exception("Failed to initialize Google Drive service")
        raise HTTPException(status_code=500, detail=f"Failed to initialize Google services: {e}")


def verify_user(authorization: Optional[str] = Header(None)) -> str:
    """Verify Firebase ID token from Authorization: Bearer <token>. Returns uid."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = parts[1]
    try:
        decoded = fb_auth.verify_id_token(token)
    except (ValueError, fb_exceptions.FirebaseError) as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")
    uid = decoded.get("uid")
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid token: no uid")
    return uid


def upload_image_to_drive(file: UploadFile) -> Dict[str, str]:
    """Upload an image to Google Drive, return its sharable link and file id."""
    drive_service = get_drive_service()
    if not DRIVE_FOLDER_ID:
        raise HTTPException(status_code=500, detail="DRIVE_FOLDER_ID not set")

    file_metadata = {
        "name": file.filename,
        "parents": [DRIVE_FOLDER_ID]
    }
    media = MediaIoBaseUpload(file.file, mimetype=file.content_type, resumable=False)
    try:
        uploaded = drive_service.files().create(body=file_metadata, media_body=media, fields="id, webViewLink, webContentLink").execute()
    except HttpError as e:
        logger.error("Drive upload failed for %s: %s", file.filename, e)
        raise HTTPException(status_code=500, detail="Upload failed")

    # Make sure file is readable by link
    try:
        drive_service.permissions().create(fileId=uploaded["id"], body={"type": "anyone", "role": "reader"}).execute()
    except HttpError as e:
        logger.warning("Could not share uploaded file %s: %s", uploaded["id"], e)
    url = uploaded.get("webContentLink") or uploaded.get("webViewLink")
    return {"url": url, "publicId": uploaded["id"]}


def lookup_responder(uid: str) -> Dict[str, Any]:
    """Display details for a responder; degrades to the bare uid."""
    try:
        user = fb_auth.get_user(uid)
    except (ValueError, fb_exceptions.FirebaseError) as e:
        logger.debug("Responder lookup failed for %s: %s", uid, e)
        return {"_id": uid, "name": None, "email": None}
    return {"_id": uid, "name": user.display_name, "email": user.email}


def share_url(form_id: str) -> str:
    return f"{PUBLIC_BASE_URL.rstrip('/')}/fill/{form_id}"


def build_form(payload: "FormPayload", owner: str) -> FormSchema:
    if not (payload.title or "").strip():
        raise HTTPException(status_code=400, detail="Form title required")
    try:
        return FormSchema(
            title=payload.title,
            description=payload.description,
            headerImageUrl=payload.headerImageUrl,
            questions=payload.questions,
            owner=owner,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False, include_input=False))


def replace_form(db, form_id, owner: str, form: FormSchema) -> Optional[dict]:
    """Full-document update scoped to the owner. Returns None when nothing matched."""
    doc = form.model_dump(exclude_none=True)
    doc.pop("owner", None)
    doc["updatedAt"] = utcnow()
    update: Dict[str, Any] = {"$set": doc}
    cleared = {key: "" for key in ("description", "headerImageUrl") if key not in doc}
    if cleared:
        update["$unset"] = cleared
    return db["form"].find_one_and_update(
        owner_scope(form_id, owner),
        update,
        return_document=ReturnDocument.AFTER,
    )


def find_form(db, form_id: str) -> dict:
    oid = to_object_id(form_id, "form")
    doc = db["form"].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail="Form not found")
    return doc


def response_summaries(db, form_id: str, limit: int, responders: Dict[str, dict]) -> List[dict]:
    cursor = db["submission"].find(
        {"formId": form_id},
        {"responder": 1, "submittedAt": 1},
    ).sort([("submittedAt", -1), ("_id", -1)]).limit(limit)
    out = []
    for r in cursor:
        uid = r.get("responder")
        if uid not in responders:
            responders[uid] = lookup_responder(uid)
        out.append({"_id": str(r["_id"]), "responder": responders[uid], "submittedAt": r.get("submittedAt")})
    return out


# --- Models ---
class FormPayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    headerImageUrl: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)


class SubmitPayload(BaseModel):
    answers: List[Answer] = Field(default_factory=list)


class EditRequest(BaseModel):
    operations: List[EditOperation]


class UploadResponse(BaseModel):
    url: str
    publicId: str


# --- Routes ---
@app.get("/")
def read_root():
    return {"message": "Form Builder API running", "time": utcnow().isoformat()}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected"
            response["database_name"] = database.db.name if hasattr(database.db, 'name') else "Unknown"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        logger.warning("Database diagnostics failed: %s", e)
        response["database"] = f"Error: {e}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


@app.post("/api/upload", response_model=UploadResponse)
def upload_image(image: Optional[UploadFile] = File(None), uid: str = Depends(verify_user)):
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are supported")
    result = upload_image_to_drive(image)
    logger.info("User %s uploaded image %s", uid, result["publicId"])
    return UploadResponse(**result)


@app.post("/api/forms", status_code=201)
def create_form(payload: FormPayload, uid: str = Depends(verify_user), db=Depends(get_db)):
    form = build_form(payload, uid)
    form_id = create_document("form", form)
    logger.info("Form %s created by %s", form_id, uid)
    doc = serialize(db["form"].find_one({"_id": to_object_id(form_id)}))
    doc["shareUrl"] = share_url(form_id)
    return doc


@app.get("/api/forms/mine")
def list_my_forms(uid: str = Depends(verify_user), db=Depends(get_db)):
    forms = db["form"].find({"owner": uid}).sort([("createdAt", -1), ("_id", -1)])
    responders: Dict[str, dict] = {}
    result = []
    # count and recent list are separate reads; a response landing in between is acceptable
    for f in forms:
        form_id = str(f["_id"])
        item = serialize(f)
        item["responseCount"] = db["submission"].count_documents({"formId": form_id})
        item["hasResponded"] = db["submission"].find_one({"formId": form_id, "responder": uid}) is not None
        item["recentResponses"] = response_summaries(db, form_id, RECENT_RESPONSES_LIMIT, responders)
        item["shareUrl"] = share_url(form_id)
        result.append(item)
    return result


@app.get("/api/forms/responses/all")
def list_all_responses(uid: str = Depends(verify_user), db=Depends(get_db)):
    forms = db["form"].find({"owner": uid}, {"title": 1, "description": 1}).sort([("createdAt", -1), ("_id", -1)])
    responders: Dict[str, dict] = {}
    result = []
    for f in forms:
        form_id = str(f["_id"])
        item = serialize(f)
        item["responseCount"] = db["submission"].count_documents({"formId": form_id})
        item["recentResponses"] = response_summaries(db, form_id, ALL_RESPONSES_LIMIT, responders)
        result.append(item)
    return result


@app.get("/api/forms/responses/{response_id}")
def get_single_response(response_id: str, uid: str = Depends(verify_user), db=Depends(get_db)):
    oid = to_object_id(response_id, "response")
    response = db["submission"].find_one({"_id": oid})
    if not response:
        raise HTTPException(status_code=404, detail="Response not found")

    form_id = response.get("formId") or ""
    form = db["form"].find_one({"_id": to_object_id(form_id)}) if ObjectId.is_valid(form_id) else None
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    if not can_read_response(uid, form, response):
        raise HTTPException(status_code=403, detail="Not authorized")

    questions = load_questions(form.get("questions", []))
    answers = reconcile(questions, response.get("answers", []))
    return {
        "_id": str(response["_id"]),
        "form": {
            "_id": str(form["_id"]),
            "title": form.get("title"),
            "description": form.get("description"),
            "headerImageUrl": form.get("headerImageUrl"),
        },
        "responder": lookup_responder(response.get("responder")),
        "submittedAt": response.get("submittedAt"),
        "answers": [a.model_dump() for a in answers],
        "questions": form.get("questions", []),
    }


@app.get("/api/forms/{form_id}")
def get_form(form_id: str, db=Depends(get_db)):
    return serialize(find_form(db, form_id))


@app.put("/api/forms/{form_id}")
def update_form(form_id: str, payload: FormPayload, uid: str = Depends(verify_user), db=Depends(get_db)):
    oid = to_object_id(form_id, "form")
    form = build_form(payload, uid)
    doc = replace_form(db, oid, uid, form)
    if not doc:
        raise HTTPException(status_code=403, detail="Not authorized or form not found")
    logger.info("Form %s updated by %s", form_id, uid)
    return serialize(doc)


@app.post("/api/forms/{form_id}/edits")
def edit_form(form_id: str, payload: EditRequest, uid: str = Depends(verify_user), db=Depends(get_db)):
    oid = to_object_id(form_id, "form")
    current = db["form"].find_one(owner_scope(oid, uid))
    if not current:
        raise HTTPException(status_code=403, detail="Not authorized or form not found")
    try:
        draft = apply_edits(FormSchema.model_validate(current), payload.operations)
        form = FormSchema.model_validate(draft.model_dump())
    except (IndexError, ValueError) as e:
        # pydantic's ValidationError is a ValueError too
        raise HTTPException(status_code=400, detail=str(e))
    doc = replace_form(db, oid, uid, form)
    if not doc:
        raise HTTPException(status_code=403, detail="Not authorized or form not found")
    return serialize(doc)


@app.post("/api/forms/{form_id}/responses", status_code=201)
def submit_response(form_id: str, payload: SubmitPayload, uid: str = Depends(verify_user), db=Depends(get_db)):
    form_doc = find_form(db, form_id)
    questions = load_questions(form_doc.get("questions", []))

    for answer in payload.answers:
        question = find_question(questions, answer.qid)
        if question is None:
            raise HTTPException(status_code=400, detail=f"Unknown question: {answer.qid}")
        try:
            parse_answer_value(question.type, answer.value)
        except ValidationError:
            raise HTTPException(status_code=400, detail=f"Answer for question {answer.qid} does not match its type")

    sub = SubmissionSchema(formId=str(form_doc["_id"]), responder=uid, answers=payload.answers)
    sub_id = create_document("submission", sub)
    logger.info("Response %s submitted to form %s by %s", sub_id, form_id, uid)
    return {"success": True, "id": sub_id}


@app.get("/api/forms/{form_id}/responses")
def list_responses(form_id: str, uid: str = Depends(verify_user), db=Depends(get_db)):
    form_doc = find_form(db, form_id)
    if not can_list_responses(uid, form_doc):
        raise HTTPException(status_code=403, detail="Not authorized")
    responses = db["submission"].find({"formId": str(form_doc["_id"])}).sort([("submittedAt", -1), ("_id", -1)])
    return [serialize(r) for r in responses]


@app.get("/api/forms/{form_id}/qr")
def form_qr(form_id: str):
    to_object_id(form_id, "form")
    img = qrcode.make(share_url(form_id))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return StreamingResponse(buf, media_type="image/png")
