import html

import streamlit as st


def setup_style():
    st.markdown("""
    <style>
        :root {
            --card-bg: rgba(167, 210, 255, 0.11);
            --card-border: rgba(234, 247, 255, 0.35);
            --text-soft: rgba(234, 244, 255, 0.72);
            --accent: #73c3ff;
            --danger: #ff8a8a;
        }

        .auth-loading-overlay {
            display: flex;
            align-items: center;
            justify-content: center;
            min-height: 50vh;
        }

        .auth-loading-card {
            text-align: center;
            padding: 2rem 2.5rem;
            border-radius: 18px;
            background: var(--card-bg);
            border: 1px solid var(--card-border);
        }

        .auth-loading-orb {
            width: 42px;
            height: 42px;
            margin: 0 auto 1rem auto;
            border-radius: 50%;
            border: 3px solid var(--card-border);
            border-top-color: var(--accent);
            animation: auth-spin 0.9s linear infinite;
        }

        .auth-loading-sub {
            color: var(--text-soft);
        }

        .mfa-secret {
            font-family: monospace;
            word-break: break-all;
            padding: 0.75rem;
            border-radius: 8px;
            background: var(--card-bg);
        }

        .mfa-code input {
            text-align: center;
            letter-spacing: 0.5em;
            font-size: 1.6rem;
        }

        @keyframes auth-spin {
            to { transform: rotate(360deg); }
        }
    </style>
    """, unsafe_allow_html=True)


def show_loading_overlay(message="Verifying authentication..."):
    """Render the transient checking state and return its placeholder."""
    placeholder = st.empty()
    placeholder.markdown(
        f"""
        <div class="auth-loading-overlay">
          <div class="auth-loading-card">
            <div class="auth-loading-orb"></div>
            <div class="auth-loading-sub">{html.escape(message)}</div>
          </div>
        </div>
        """,
        unsafe_allow_html=True
    )
    return placeholder


def render_secret(secret):
    st.markdown(f"<div class='mfa-secret'>{html.escape(secret)}</div>", unsafe_allow_html=True)


def render_qr_code(qr_code, size=192):
    # Providers return the QR code as an image data URI (SVG or PNG).
    st.markdown(
        f"<img src=\"{html.escape(qr_code, quote=True)}\" alt=\"MFA QR Code\" width=\"{size}\" height=\"{size}\" "
        f"style=\"background: white; padding: 12px; border-radius: 12px;\"/>",
        unsafe_allow_html=True
    )
