"""Website CMS tables and the landing page data they feed."""
from flask import current_app

from deptportal.models import (
    CmsHeroSlide, CmsDepartmentInfo, CmsHodMessage, CmsStat, CmsNewsEvent,
    CmsResearchHighlight, CmsLabFacility, CmsClubActivity, CmsGalleryItem,
    CmsNavigationLink, CmsPageSection, CmsProgram,
)

# table name -> (model, ordering column, toggleable boolean fields)
CMS_TABLES = {
    'cms_hero_slides': (CmsHeroSlide, 'display_order', ('is_active',)),
    'cms_department_info': (CmsDepartmentInfo, 'key', ()),
    'cms_hod_message': (CmsHodMessage, 'created_at', ('is_active',)),
    'cms_stats': (CmsStat, 'display_order', ('is_active',)),
    'cms_news_events': (CmsNewsEvent, 'published_at', ('is_featured',)),
    'cms_research_highlights': (CmsResearchHighlight, 'display_order', ('is_active',)),
    'cms_lab_facilities': (CmsLabFacility, 'display_order', ('is_active',)),
    'cms_clubs_activities': (CmsClubActivity, 'display_order', ('is_active',)),
    'cms_gallery': (CmsGalleryItem, 'display_order', ('is_active',)),
    'cms_navigation_links': (CmsNavigationLink, 'display_order', ('is_active',)),
    'cms_page_sections': (CmsPageSection, 'display_order', ('is_visible',)),
    'cms_programs': (CmsProgram, 'display_order', ('is_active',)),
}

# Columns the editor never writes directly
READ_ONLY_FIELDS = ('id', 'created_at', 'updated_at')


def get_image_url(path):
    """Public URL for an image stored in the CMS bucket. The DB stores bare filenames."""
    if not path:
        return ''
    if path.startswith('http'):
        return path
    base = current_app.config.get('CMS_IMAGE_BASE_URL', '').rstrip('/')
    bucket = current_app.config.get('CMS_IMAGE_BUCKET', 'cms-images')
    if not base:
        return f"/static/{bucket}/{path}"
    return f"{base}/storage/v1/object/public/{bucket}/{path}"


def writable_columns(model):
    return [c.name for c in model.__table__.columns if c.name not in READ_ONLY_FIELDS]


def _active(model, order_by, limit=None):
    q = model.query.filter_by(is_active=True).order_by(getattr(model, order_by))
    if limit:
        q = q.limit(limit)
    return q.all()


def fetch_landing_page_data():
    department_info = {}
    for row in CmsDepartmentInfo.query.all():
        if row.key and row.value:
            department_info[row.key] = row.value

    news = (CmsNewsEvent.query
            .order_by(CmsNewsEvent.published_at.desc(), CmsNewsEvent.created_at.desc())
            .limit(6).all())

    return {
        'hero_slides': _active(CmsHeroSlide, 'display_order'),
        'department_info': department_info,
        'hod_message': CmsHodMessage.query.filter_by(is_active=True).first(),
        'stats': _active(CmsStat, 'display_order'),
        'news': news,
        'research': _active(CmsResearchHighlight, 'display_order', limit=6),
        'labs': _active(CmsLabFacility, 'display_order'),
        'clubs': _active(CmsClubActivity, 'display_order'),
        'gallery': _active(CmsGalleryItem, 'display_order', limit=8),
        'nav_links': _active(CmsNavigationLink, 'display_order'),
        'page_sections': CmsPageSection.query.order_by(CmsPageSection.display_order).all(),
        'programs': _active(CmsProgram, 'display_order'),
    }
