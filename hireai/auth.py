"""
Session-cookie authentication and role checks
"""
import logging
import os
import sqlite3
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request

from hireai import config
from hireai.db import get_db, new_id
from hireai.schemas import LoginRequest, RegisterRequest, RoleRequest

logger = logging.getLogger(__name__)

ROLES = ("candidate", "recruiter")

router = APIRouter()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def public_user(row) -> dict:
    return {"id": row["id"], "name": row["name"], "email": row["email"], "role": row["role"]}


def get_current_user(request: Request) -> Optional[dict]:
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT id, name, email, role FROM users WHERE id = ?", (user_id,))
    user = cursor.fetchone()
    conn.close()

    return public_user(user) if user else None


def require_user(request: Request) -> dict:
    user = get_current_user(request)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_role(role: str):
    def dependency(user: dict = Depends(require_user)) -> dict:
        if user["role"] != role:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return dependency


# ============================================================================
# API ROUTES - AUTH
# ============================================================================

@router.post("/api/auth/register", status_code=201)
async def register(body: RegisterRequest, request: Request):
    name = body.name.strip()
    email = body.email.lower().strip()
    if not name or not email or not body.password:
        raise HTTPException(status_code=400, detail="Name, email, and password are required")
    if len(body.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT id FROM users WHERE email = ?", (email,))
    if cursor.fetchone():
        conn.close()
        raise HTTPException(status_code=409, detail="Email already registered")

    user_id = new_id()
    # Everyone starts as a candidate and picks a role on the next screen
    cursor.execute(
        "INSERT INTO users (id, name, email, password_hash, role) VALUES (?, ?, ?, ?, ?)",
        (user_id, name, email, hash_password(body.password), "candidate")
    )
    conn.commit()
    conn.close()

    request.session["user_id"] = user_id
    logger.info("Registered user %s", email)

    return {"user": {"id": user_id, "name": name, "email": email, "role": "candidate"}}


@router.post("/api/auth/login")
async def login(body: LoginRequest, request: Request):
    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM users WHERE email = ?", (body.email.lower().strip(),))
    user = cursor.fetchone()
    conn.close()

    if not user or not verify_password(body.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    request.session["user_id"] = user["id"]

    return {"user": public_user(user)}


@router.post("/api/auth/logout")
async def logout(request: Request):
    request.session.clear()
    return {"success": True, "message": "Logged out"}


@router.get("/api/auth/me")
async def me(user: dict = Depends(require_user)):
    return {"user": user}


@router.post("/api/auth/role")
async def select_role(body: RoleRequest, user: dict = Depends(require_user)):
    if body.role not in ROLES:
        raise HTTPException(status_code=400, detail=f"Role must be one of: {', '.join(ROLES)}")

    conn = get_db()
    conn.execute("UPDATE users SET role = ? WHERE id = ?", (body.role, user["id"]))
    conn.commit()
    conn.close()

    return {"user": {**user, "role": body.role}}


@router.get("/api/auth/check-user", dependencies=[Depends(require_user)])
async def check_user(email: str = ""):
    email = email.lower().strip()
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")

    conn = get_db()
    cursor = conn.cursor()
    cursor.execute("SELECT role FROM users WHERE email = ?", (email,))
    row = cursor.fetchone()
    conn.close()

    return {"exists": row is not None, "role": row["role"] if row else None}


@router.delete("/api/auth/account")
async def delete_account(request: Request, user: dict = Depends(require_user)):
    conn = get_db()
    cursor = conn.cursor()
    try:
        cursor.execute(
            "SELECT id, resume_file_path FROM candidates WHERE user_id = ?", (user["id"],)
        )
        candidates = cursor.fetchall()
        candidate_ids = [c["id"] for c in candidates]

        if candidate_ids:
            placeholders = ",".join("?" * len(candidate_ids))
            # proctor_snapshots go with their submissions through the foreign key
            cursor.execute(f"DELETE FROM results WHERE candidate_id IN ({placeholders})", candidate_ids)
            cursor.execute(f"DELETE FROM ai_scores WHERE candidate_id IN ({placeholders})", candidate_ids)
            cursor.execute(f"DELETE FROM submissions WHERE candidate_id IN ({placeholders})", candidate_ids)
            cursor.execute(f"DELETE FROM candidates WHERE id IN ({placeholders})", candidate_ids)

        cursor.execute("DELETE FROM users WHERE id = ?", (user["id"],))
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("Account deletion failed for %s: %s", user["email"], e)
        raise HTTPException(status_code=500, detail="Failed to delete account")
    finally:
        conn.close()

    for candidate in candidates:
        if candidate["resume_file_path"]:
            path = os.path.join(config.RESUME_DIR, candidate["resume_file_path"])
            if os.path.exists(path):
                os.remove(path)

    request.session.clear()
    logger.info("Deleted account %s with %d candidate record(s)", user["email"], len(candidate_ids))

    return {"success": True, "message": "Account deleted successfully"}
