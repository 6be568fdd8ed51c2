"""Анонимный чат один-на-один: пейринг незнакомцев, релей сообщений, модерация."""
