"""크레딧 리포지토리 - 잔액 차감과 원장 기록을 하나의 트랜잭션으로 처리."""

from __future__ import annotations

import json
from typing import Optional, Dict, Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from leadgen.core.logging import logger
from leadgen.core.exceptions import DatabaseException, InsufficientCredits
from leadgen.repositories.models import User, CreditTransaction, SearchHistory


class CreditRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_balance(self, user_id: str) -> int:
        user = self.get_user(user_id)
        return int(user.credits) if user else 0

    def get_tier(self, user_id: str) -> Optional[str]:
        user = self.get_user(user_id)
        return user.subscription_tier if user else None

    def debit(
        self,
        user_id: str,
        amount: int,
        tx_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        history: Optional[Dict[str, Any]] = None,
    ) -> int:
        """조건부 차감 (credits >= amount) + 원장 + 검색 기록, 한 트랜잭션

        Returns:
            차감 후 잔액

        Raises:
            InsufficientCredits: 잔액 부족 또는 사용자 없음
        """
        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id, User.credits >= amount)
                .values(credits=User.credits - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                raise InsufficientCredits(user_id, amount)

            self.db.add(
                CreditTransaction(
                    user_id=user_id,
                    amount=-int(amount),
                    type=tx_type,
                    description=description,
                    metadata_json=json.dumps(metadata, ensure_ascii=False) if metadata else None,
                )
            )
            if history:
                self.db.add(
                    SearchHistory(
                        user_id=user_id,
                        city=history.get("city", ""),
                        keyword=history.get("keyword", ""),
                        deep_search="true" if history.get("deep_search") else "false",
                    )
                )

            self.db.commit()
            balance = self.get_balance(user_id)
            logger.info(f"[CREDITS] debit user={user_id} amount={amount} type={tx_type} balance={balance}")
            return balance
        except InsufficientCredits:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Credit debit failed: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to debit credits: {e}")

    def credit(self, user_id: str, amount: int, tx_type: str, description: str) -> int:
        """충전/보상 트랜잭션 (수동 정산용)"""
        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(credits=User.credits + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                raise DatabaseException(f"User not found: {user_id}", error_code="USER_NOT_FOUND")

            self.db.add(
                CreditTransaction(user_id=user_id, amount=int(amount), type=tx_type, description=description)
            )
            self.db.commit()
            return self.get_balance(user_id)
        except DatabaseException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Credit grant failed: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to credit user: {e}")
