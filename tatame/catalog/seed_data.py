"""
Bundled WordPress plugin and theme catalog.

Seeded into ``wordpress_plugins`` / ``wordpress_themes`` on startup.
"""

from __future__ import annotations

from typing import Any


def _plugin(
    slug: str,
    name: str,
    description: str,
    category: str,
    version: str,
    author: str,
    rating: float,
    features: list[str],
    tags: list[str],
    is_default: bool = True,
    conflicts: list[str] | None = None,
    dependencies: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "slug": slug,
        "name": name,
        "description": description,
        "category": category,
        "version": version,
        "author": author,
        "rating": rating,
        "is_default": is_default,
        "is_active": True,
        "is_premium": False,
        "features": features,
        "tags": tags,
        "dependencies": dependencies or [],
        "conflicts": conflicts or [],
    }


def _theme(
    slug: str,
    name: str,
    description: str,
    category: str,
    version: str,
    author: str,
    rating: float,
    features: list[str],
    is_default: bool = True,
    demo_url: str | None = None,
) -> dict[str, Any]:
    return {
        "slug": slug,
        "name": name,
        "description": description,
        "category": category,
        "version": version,
        "author": author,
        "rating": rating,
        "is_default": is_default,
        "is_active": True,
        "is_premium": False,
        "features": features,
        "demo_url": demo_url,
    }


PLUGINS: list[dict[str, Any]] = [
    # SEO
    _plugin(
        "wordpress-seo", "Yoast SEO",
        "Plugin de SEO mais popular do WordPress com análise de conteúdo e otimização técnica.",
        "seo", "22.0", "Team Yoast", 4.6,
        ["Content Analysis", "XML Sitemaps", "Meta Tags", "Schema Markup", "Readability Check"],
        ["seo", "xml-sitemap", "google", "meta", "schema"],
        conflicts=["rank-math", "all-in-one-seo-pack"],
    ),
    _plugin(
        "seo-by-rank-math", "RankMath SEO",
        "Plugin SEO completo com AI integration e análise avançada.",
        "seo", "1.0.120", "Rank Math", 4.8,
        ["AI SEO", "Rich Snippets", "Local SEO", "WooCommerce SEO", "Google Analytics"],
        ["seo", "rich-snippets", "ai", "analytics", "local-seo"],
        is_default=False,
        conflicts=["wordpress-seo", "all-in-one-seo-pack"],
    ),
    # Security
    _plugin(
        "wordfence", "Wordfence Security",
        "Plugin de segurança completo com firewall, scanner de malware e proteção de login.",
        "security", "7.10.6", "Wordfence", 4.7,
        ["Web Application Firewall", "Malware Scanner", "Login Security", "Real-time Traffic View"],
        ["security", "firewall", "malware", "login-protection", "scanner"],
    ),
    _plugin(
        "sucuri-scanner", "Sucuri Security",
        "Auditoria de segurança, scanner de malware e monitoramento de integridade.",
        "security", "1.8.44", "Sucuri Inc.", 4.5,
        ["Security Scanner", "File Integrity Monitor", "Security Hardening", "Access Control"],
        ["security", "scanner", "hardening", "monitoring", "malware"],
        is_default=False,
    ),
    # Performance
    _plugin(
        "w3-total-cache", "W3 Total Cache",
        "Plugin de cache completo para otimização de performance.",
        "performance", "2.7.0", "BoldGrid", 4.2,
        ["Page Cache", "Database Cache", "Object Cache", "CDN Integration", "Minification"],
        ["cache", "performance", "speed", "cdn", "optimization"],
        conflicts=["wp-super-cache", "wp-rocket"],
    ),
    _plugin(
        "wp-super-cache", "WP Super Cache",
        "Plugin de cache simples e eficiente para acelerar seu WordPress.",
        "performance", "1.12.2", "Automattic", 4.4,
        ["Static HTML Cache", "CDN Support", "Preloading", "Mobile Support"],
        ["cache", "performance", "speed", "static"],
        is_default=False,
        conflicts=["w3-total-cache", "wp-rocket"],
    ),
    # Backup
    _plugin(
        "updraftplus", "UpdraftPlus",
        "Plugin de backup mais popular com restore com um clique.",
        "backup", "1.23.12", "UpdraftPlus.Com, DavidAnderson", 4.8,
        ["Automated Backups", "Cloud Storage", "One-Click Restore", "Migration Tools"],
        ["backup", "restore", "cloud", "migration", "automated"],
    ),
    # Forms
    _plugin(
        "contact-form-7", "Contact Form 7",
        "Plugin de formulários flexível e simples de usar.",
        "forms", "5.8.7", "Takayuki Miyoshi", 4.1,
        ["Flexible Forms", "CAPTCHA Support", "Akismet Integration", "Multi-language"],
        ["contact-form", "form", "email", "ajax"],
    ),
    _plugin(
        "wpforms-lite", "WPForms Lite",
        "Construtor de formulários drag & drop mais amigável do WordPress.",
        "forms", "1.8.6.3", "WPForms", 4.9,
        ["Drag & Drop Builder", "Pre-built Templates", "Anti-spam Protection", "Responsive Forms"],
        ["contact-form", "form", "contact", "custom-form", "drag-and-drop"],
        is_default=False,
    ),
    # E-commerce
    _plugin(
        "woocommerce", "WooCommerce",
        "Plataforma de e-commerce mais popular do mundo para WordPress.",
        "ecommerce", "8.7.0", "Automattic", 4.4,
        ["Complete E-commerce", "Payment Gateways", "Shipping Options", "Product Management"],
        ["e-commerce", "shop", "cart", "checkout", "payments"],
    ),
    # Analytics
    _plugin(
        "google-analytics-for-wordpress", "MonsterInsights",
        "Plugin oficial do Google Analytics para WordPress.",
        "analytics", "8.25.0", "MonsterInsights", 4.6,
        ["Google Analytics 4", "E-commerce Tracking", "Custom Dimensions", "Real-time Stats"],
        ["analytics", "google-analytics", "tracking", "stats", "ga4"],
    ),
    # Social
    _plugin(
        "social-warfare", "Social Warfare",
        "Plugin de compartilhamento social rápido e bonito.",
        "social", "4.4.6.3", "Warfare Plugins", 4.5,
        ["Social Share Buttons", "Click Tracking", "Pinterest Image", "Custom Colors"],
        ["social", "sharing", "facebook", "twitter", "pinterest"],
    ),
    # Content
    _plugin(
        "elementor", "Elementor",
        "Page builder #1 do WordPress com drag & drop visual.",
        "content", "3.20.1", "Elementor.com", 4.5,
        ["Drag & Drop Builder", "Visual Editor", "Responsive Design", "Widget Library"],
        ["page-builder", "editor", "landing-page", "drag-and-drop", "visual"],
    ),
    # Utilities
    _plugin(
        "duplicate-post", "Duplicate Post",
        "Duplique posts, páginas e custom posts facilmente.",
        "utilities", "4.5", "Enrico Battocchi & Team", 4.8,
        ["Clone Posts", "Bulk Actions", "Template Creation", "Custom Post Types"],
        ["duplicate", "clone", "copy", "post", "page"],
    ),
]


THEMES: list[dict[str, Any]] = [
    _theme(
        "twentytwentyfour", "Twenty Twenty-Four",
        "O tema padrão do WordPress 2024, moderno e versátil para blogs e sites pessoais.",
        "blog", "1.0", "WordPress.org", 4.8,
        ["Responsive Design", "Block Editor Ready", "SEO Optimized", "Fast Loading"],
    ),
    _theme(
        "astra", "Astra",
        "Tema leve e personalizável, perfeito para blogs, negócios e lojas online.",
        "blog", "4.6.0", "Brainstorm Force", 4.9,
        ["Ultra Fast", "SEO Ready", "WooCommerce Compatible", "60+ Starter Sites"],
        is_default=False,
    ),
    _theme(
        "generatepress", "GeneratePress",
        "Tema empresarial profissional, rápido e altamente customizável.",
        "business", "3.4.0", "Tom Usborne", 4.8,
        ["Lightweight", "Mobile Responsive", "Accessibility Ready", "Schema Markup"],
    ),
    _theme(
        "oceanwp", "OceanWP",
        "Tema multipropósito ideal para empresas, portfolios e lojas online.",
        "business", "3.5.7", "OceanWP", 4.7,
        ["WooCommerce Integration", "SEO Friendly", "Translation Ready", "Page Builder Compatible"],
        is_default=False,
    ),
    _theme(
        "storefront", "Storefront",
        "Tema oficial do WooCommerce, perfeito para lojas online.",
        "ecommerce", "4.5.0", "Automattic", 4.6,
        ["WooCommerce Native", "Mobile Optimized", "Customizer Ready", "Child Theme Friendly"],
    ),
    _theme(
        "sydney", "Sydney",
        "Tema moderno para portfolios e sites criativos.",
        "portfolio", "1.42", "aThemes", 4.5,
        ["Portfolio Layouts", "Custom Widgets", "Google Fonts", "Social Media Integration"],
    ),
    _theme(
        "neve", "Neve",
        "Tema super rápido para agências e empresas modernas.",
        "agency", "3.7.0", "ThemeIsle", 4.8,
        ["AMP Ready", "Page Builder Compatible", "Mobile First", "SEO Optimized"],
    ),
    _theme(
        "colormag", "ColorMag",
        "Tema magazine responsivo com múltiplos layouts.",
        "magazine", "3.1.3", "ThemeGrill", 4.4,
        ["Magazine Layout", "Custom Widgets", "Advertisement Areas", "Translation Ready"],
    ),
    _theme(
        "onepress", "OnePress",
        "Tema one-page perfeito para landing pages e sites promocionais.",
        "landing", "2.3.8", "FameThemes", 4.6,
        ["One Page Layout", "Parallax Scrolling", "Call to Action", "Portfolio Section"],
    ),
]
